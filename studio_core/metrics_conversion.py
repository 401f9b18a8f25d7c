from __future__ import annotations

from dataclasses import asdict
from typing import Any, Callable, Dict, List, Literal, Optional

import pandas as pd

from studio_core.aggregation import (
    CONVERTED_STATUS,
    RETAINED_STATUS,
    AggregationConfig,
    aggregate,
    is_new_value,
    safe_ratio,
)
from studio_core.charts import trend_chart
from studio_core.dates import Granularity
from studio_core.filters import DashboardFilters
from studio_core.records import ClientRecord

GroupBy = Literal["month", "type", "class"]

UNKNOWN_CLASS = "Unknown Class"


def _converted(c: ClientRecord) -> bool:
    return c.conversion_status == CONVERTED_STATUS


def _retained(c: ClientRecord) -> bool:
    return c.retention_status == RETAINED_STATUS


def _timed_conversion(c: ClientRecord) -> bool:
    return _converted(c) and c.conversion_span > 0


CARD_FILTERS: Dict[str, Callable[[ClientRecord], bool]] = {
    "new_members": lambda c: is_new_value(c.is_new),
    "converted_members": _converted,
    "retained_members": _retained,
    "conversion_rate": lambda c: is_new_value(c.is_new) or _converted(c),
    "retention_rate": lambda c: _converted(c) or _retained(c),
    "avg_ltv": lambda c: c.ltv > 0,
    "avg_conv_time": _timed_conversion,
    "trial_to_member": lambda c: c.visits_post_trial > 0,
    "lead_to_trial": lambda c: is_new_value(c.is_new) and c.visits_post_trial > 0,
}

CARDS_CONFIG = AggregationConfig(
    date_field=None,
    interval_source="none",
    sums={"timed_conversion_days": lambda c: c.conversion_span if _timed_conversion(c) else 0.0},
    counts={"timed_conversions": _timed_conversion},
)


def month_on_month_config(by: GroupBy = "month", granularity: Granularity = "month") -> AggregationConfig:
    if by == "type":
        return AggregationConfig(granularity=granularity, dimension="is_new", interval_source="conversion_span")
    if by == "class":
        return AggregationConfig(
            granularity=granularity,
            dimension="first_visit_entity_name",
            dimension_fallback=UNKNOWN_CLASS,
            unknown_period=True,
            order_by="total_members",
        )
    if by == "month":
        return AggregationConfig(granularity=granularity, order_by="period_desc")
    raise ValueError(f"Unknown grouping {by!r}; expected 'month', 'type' or 'class'")


def compute_conversion_cards(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    clients: List[ClientRecord] = ctx.get("clients", [])
    totals = aggregate(clients, CARDS_CONFIG).totals

    trials = totals.trials_completed
    avg_conv_time = safe_ratio(totals.sums["timed_conversion_days"], totals.counts["timed_conversions"])
    cards = [
        {"title": "New Members", "metric_type": "new_members", "value": totals.new_members},
        {"title": "Converted Members", "metric_type": "converted_members", "value": totals.converted},
        {"title": "Retained Members", "metric_type": "retained_members", "value": totals.retained},
        {"title": "Conversion Rate", "metric_type": "conversion_rate", "value": totals.conversion_rate},
        {"title": "Retention Rate", "metric_type": "retention_rate", "value": totals.retention_rate},
        {"title": "Avg LTV", "metric_type": "avg_ltv", "value": totals.avg_ltv},
        {"title": "Avg Conv. Time", "metric_type": "avg_conv_time", "value": avg_conv_time},
        {"title": "Trial → Member", "metric_type": "trial_to_member", "value": safe_ratio(totals.converted, trials, 100.0)},
    ]
    return {
        "filters": asdict(filters),
        "cards": cards,
        "kpis": {
            "total_clients": totals.total_members,
            "total_ltv": totals.total_ltv,
            "trials_completed": trials,
            "lead_to_trial": safe_ratio(trials, totals.new_members, 100.0),
            "trial_to_member": safe_ratio(totals.converted, trials, 100.0),
            "avg_conversion_time": avg_conv_time,
        },
    }


def compute_conversion_month_on_month(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    by: GroupBy = "month",
    granularity: Granularity = "month",
) -> Dict[str, Any]:
    clients: List[ClientRecord] = ctx.get("clients", [])
    result = aggregate(clients, month_on_month_config(by, granularity))

    rows = result.rows()
    if by == "class":
        rows = rows[: filters.top_n]

    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "by": by,
        "granularity": granularity,
        "table": rows,
        "totals": result.totals.as_row(),
        "invalid_dates": result.invalid_dates,
        "charts": {},
    }

    trend = aggregate(clients, AggregationConfig(granularity=granularity)).rows()
    if trend:
        trend_df = pd.DataFrame(trend)[["period", "conversion_rate", "retention_rate"]]
        payload["charts"]["trend"] = trend_chart(
            trend_df,
            "period",
            ["conversion_rate", "retention_rate"],
            x_title="Period",
            y_title="Rate (%)",
            y_format=".0f",
        )
    return payload


def compute_drilldown(
    filters: DashboardFilters,
    ctx: Dict[str, Any],
    *,
    metric_type: Optional[str] = None,
    by: GroupBy = "month",
    granularity: Granularity = "month",
    period_key: Optional[str] = None,
    dimension: Optional[str] = None,
) -> Dict[str, Any]:
    """Source records behind a card metric, or behind one table group."""
    clients: List[ClientRecord] = ctx.get("clients", [])
    if metric_type is not None:
        predicate = CARD_FILTERS.get(metric_type)
        if predicate is None:
            raise ValueError(f"Unknown metric type {metric_type!r}")
        records = [c for c in clients if predicate(c)]
        title = metric_type
    else:
        result = aggregate(clients, month_on_month_config(by, granularity))
        group = result.find(period_key, dimension)
        records = list(group.records) if group is not None else []
        title = " · ".join(x for x in (period_key, dimension) if x)

    return {
        "filters": asdict(filters),
        "title": title,
        "count": len(records),
        "records": [asdict(r) for r in records],
    }
