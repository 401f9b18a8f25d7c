from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from studio_core.aggregation import AggregationConfig, aggregate, mean, safe_ratio
from studio_core.charts import bar_chart, trend_chart
from studio_core.dates import Granularity
from studio_core.filters import DashboardFilters, seller_name
from studio_core.records import SalesRecord

DISCOUNT_SUMS = {
    "discount_amount": lambda s: s.discount_amount,
    "payment_value": lambda s: s.payment_value,
    "discount_percentage": lambda s: s.discount_percentage,
}


def discount_config(granularity: Granularity = "month") -> AggregationConfig:
    return AggregationConfig(
        date_field="payment_date",
        granularity=granularity,
        dimension="cleaned_category",
        interval_source="none",
        new_first=False,
        sums=DISCOUNT_SUMS,
    )


def discounted(sales: List[SalesRecord]) -> List[SalesRecord]:
    return [s for s in sales if s.discount_amount > 0]


def _discount_row(g) -> Dict[str, Any]:
    return {
        "period": g.period_label,
        "period_key": g.period_key,
        "category": g.dimension,
        "transactions": g.total_members,
        "total_discount": g.sums["discount_amount"],
        "revenue": g.sums["payment_value"],
        "avg_discount": g.averages["discount_amount"],
        "avg_discount_percent": g.averages["discount_percentage"],
        "discount_share": safe_ratio(g.sums["discount_amount"], g.sums["discount_amount"] + g.sums["payment_value"], 100.0),
    }


def _ranking(sales: List[SalesRecord], label: str, key, top_n: int) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            label: [key(s) or "Unknown" for s in sales],
            "total_discount": [s.discount_amount for s in sales],
            "transactions": [1] * len(sales),
        }
    )
    if df.empty:
        return df
    ranked = df.groupby(label, as_index=False).agg(total_discount=("total_discount", "sum"), transactions=("transactions", "sum"))
    return ranked.sort_values("total_discount", ascending=False, kind="stable").head(top_n)


def compute_discounts(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sales = discounted(ctx.get("sales", []))

    total_discount = sum(s.discount_amount for s in sales)
    revenue = sum(s.payment_value for s in sales)
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "kpis": {
            "total_discount": total_discount,
            "transactions": len(sales),
            "avg_discount": safe_ratio(total_discount, len(sales)),
            "avg_discount_percent": mean([s.discount_percentage for s in sales]),
            "revenue_after_discount": revenue,
            "unique_customers": len({s.customer_name for s in sales if s.customer_name}),
        },
        "month_on_month": {"table": [], "totals": None},
        "year_on_year": {"table": [], "totals": None},
        "top_products": [],
        "top_sellers": [],
        "charts": {},
    }
    if not sales:
        return payload

    for name, granularity in (("month_on_month", "month"), ("year_on_year", "year")):
        result = aggregate(sales, discount_config(granularity))
        totals = _discount_row(result.totals)
        totals["category"] = "All Categories"
        payload[name] = {"table": [_discount_row(g) for g in result.groups], "totals": totals, "invalid_dates": result.invalid_dates}

    products = _ranking(sales, "product", lambda s: s.cleaned_product, filters.top_n)
    sellers = _ranking(sales, "sold_by", seller_name, filters.top_n)
    payload["top_products"] = products.to_dict(orient="records")
    payload["top_sellers"] = sellers.to_dict(orient="records")

    monthly = aggregate(sales, AggregationConfig(date_field="payment_date", interval_source="none", sums=DISCOUNT_SUMS))
    trend = pd.DataFrame([{"period": g.period_label, "total_discount": g.sums["discount_amount"]} for g in monthly.groups])
    payload["charts"] = {
        "discount_trend": trend_chart(trend, "period", ["total_discount"], x_title="Month", y_title="Discount"),
        "top_products": bar_chart(products, "product", "total_discount", title="Discount"),
    }
    return payload
