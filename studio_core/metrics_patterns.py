from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from studio_core.aggregation import AggregationConfig, aggregate, mean, safe_ratio
from studio_core.charts import bar_chart, share_chart, trend_chart
from studio_core.dates import parse_studio_date
from studio_core.filters import DashboardFilters
from studio_core.records import SessionRecord

ACTIVE_STATUS = "Active"
HIGH_RISK = "High Risk"
CHURN_MARKERS = ("expired", "cancelled", "churned")


def is_churned(s: SessionRecord) -> bool:
    if not s.membership_status:
        return False
    status = s.membership_status.lower()
    return any(marker in status for marker in CHURN_MARKERS) or s.days_until_expiry < 0


MONTH_ON_MONTH_CONFIG = AggregationConfig(
    date_field="start_date",
    dimension="membership_package_name",
    dimension_fallback=None,
    interval_source="none",
    new_first=False,
    sums={
        "attended_classes": lambda s: s.attended_sessions_count,
        "revenue_from_attended": lambda s: s.attended_sessions_count * s.price_per_session_attended,
        "revenue_from_booked": lambda s: s.total_sessions_booked * s.price_per_session_booked,
        "revenue_from_projected": lambda s: s.projected_total_sessions * s.price_per_projected_session,
        "utilization_rate": lambda s: s.membership_utilization_rate,
        "attendance_rate": lambda s: s.attendance_rate,
    },
)

TYPE_ANALYSIS_CONFIG = AggregationConfig(
    date_field=None,
    dimension="type",
    interval_source="none",
    order_by="revenue",
    sums={
        "revenue": lambda s: s.total_amount_paid,
        "attended_sessions": lambda s: s.attended_sessions_count,
        "booked_sessions": lambda s: s.total_sessions_booked,
        "utilization_rate": lambda s: s.membership_utilization_rate,
        "attendance_rate": lambda s: s.attendance_rate,
        "value_realization_score": lambda s: s.value_realization_score,
    },
    counts={
        "active": lambda s: s.membership_status == ACTIVE_STATUS,
        "churned": is_churned,
    },
)

TREND_CONFIG = AggregationConfig(
    date_field="start_date",
    interval_source="none",
    sums={
        "utilization": lambda s: s.membership_utilization_rate,
        "attendance": lambda s: s.attendance_rate,
    },
)


def _first_per_member(sessions: List[SessionRecord]) -> List[SessionRecord]:
    seen = set()
    out = []
    for s in sessions:
        if s.member_id in seen:
            continue
        seen.add(s.member_id)
        out.append(s)
    return out


def _distribution(sessions: List[SessionRecord], name: str) -> pd.DataFrame:
    values = [getattr(s, name) or "Unknown" for s in _first_per_member(sessions)]
    if not values:
        return pd.DataFrame(columns=[name, "count"])
    return pd.Series(values, name=name).value_counts().rename_axis(name).reset_index(name="count")


def compute_patterns_overview(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sessions: List[SessionRecord] = ctx.get("sessions", [])

    members = {s.member_id for s in sessions}
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "kpis": {
            "total_members": len(members),
            "active_members": len({s.member_id for s in sessions if s.membership_status == ACTIVE_STATUS}),
            "total_revenue": sum(s.total_amount_paid for s in sessions),
            "avg_attendance_rate": mean([s.attendance_rate for s in sessions]),
            "high_risk_members": len({s.member_id for s in sessions if s.churn_risk_assessment == HIGH_RISK}),
            "avg_utilization_rate": mean([s.membership_utilization_rate for s in sessions]),
        },
        "charts": {},
        "tables": {},
    }
    if not sessions:
        return payload

    revenue = pd.DataFrame({"type": [s.type or "Unknown" for s in sessions], "revenue": [s.total_amount_paid for s in sessions]})
    revenue = revenue.groupby("type", as_index=False)["revenue"].sum().sort_values("revenue", ascending=False, kind="stable").head(8)
    status = _distribution(sessions, "membership_status")
    engagement = _distribution(sessions, "member_engagement_level")

    trend_rows = aggregate(sessions, TREND_CONFIG).groups[-12:]
    trend = pd.DataFrame(
        [{"period": g.period_label, "utilization": g.averages["utilization"], "attendance": g.averages["attendance"]} for g in trend_rows]
    )

    payload["charts"] = {
        "revenue_by_type": bar_chart(revenue, "type", "revenue", title="Revenue"),
        "status_distribution": share_chart(status, "membership_status"),
        "engagement_distribution": share_chart(engagement, "member_engagement_level"),
        "utilization_trend": trend_chart(trend, "period", ["utilization", "attendance"], x_title="Month", y_title="Rate (%)", y_format=".0f"),
    }
    payload["tables"] = {
        "revenue_by_type": revenue.to_dict(orient="records"),
        "status_distribution": status.to_dict(orient="records"),
        "engagement_distribution": engagement.to_dict(orient="records"),
        "utilization_trend": trend.to_dict(orient="records"),
    }
    return payload


def _patterns_row(g) -> Dict[str, Any]:
    return {
        "period": g.period_label,
        "period_key": g.period_key,
        "membership": g.dimension,
        "total_members": g.total_members,
        "avg_attended_classes": g.averages["attended_classes"],
        "revenue_from_attended": g.sums["revenue_from_attended"],
        "revenue_from_booked": g.sums["revenue_from_booked"],
        "revenue_from_projected": g.sums["revenue_from_projected"],
        "utilization_rate": g.averages["utilization_rate"],
        "attendance_rate": g.averages["attendance_rate"],
    }


def compute_patterns_month_on_month(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sessions: List[SessionRecord] = ctx.get("sessions", [])
    result = aggregate(sessions, MONTH_ON_MONTH_CONFIG)
    totals = _patterns_row(result.totals)
    totals["membership"] = "All Memberships"
    return {
        "filters": asdict(filters),
        "table": [_patterns_row(g) for g in result.groups],
        "totals": totals,
        "invalid_dates": result.invalid_dates,
        "skipped_without_package": result.skipped_dimension,
    }


def _type_row(g) -> Dict[str, Any]:
    return {
        "type": g.dimension,
        "total_members": g.total_members,
        "active_members": g.counts["active"],
        "churned_members": g.counts["churned"],
        "churn_rate": g.rates["churned"],
        "total_revenue": g.sums["revenue"],
        "avg_revenue": g.averages["revenue"],
        "total_attended_sessions": g.sums["attended_sessions"],
        "avg_attended_sessions": g.averages["attended_sessions"],
        "total_booked_sessions": g.sums["booked_sessions"],
        "avg_booked_sessions": g.averages["booked_sessions"],
        "avg_utilization_rate": g.averages["utilization_rate"],
        "avg_attendance_rate": g.averages["attendance_rate"],
        "avg_value_realization_score": g.averages["value_realization_score"],
    }


def compute_type_analysis(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sessions: List[SessionRecord] = ctx.get("sessions", [])
    result = aggregate(sessions, TYPE_ANALYSIS_CONFIG)
    totals = _type_row(result.totals)
    totals["type"] = "Total"
    return {
        "filters": asdict(filters),
        "table": [_type_row(g) for g in result.groups],
        "totals": totals,
    }


def _later(candidate: str, current: str) -> bool:
    new, old = parse_studio_date(candidate), parse_studio_date(current)
    if new is not None and old is not None:
        return new > old
    return candidate > current


def churned_members(sessions: List[SessionRecord]) -> List[Dict[str, Any]]:
    members: Dict[str, Dict[str, Any]] = {}
    for s in sessions:
        if not is_churned(s) or not s.member_id:
            continue
        current = members.get(s.member_id)
        if current is None:
            members[s.member_id] = {
                "member_id": s.member_id,
                "member_name": s.member_name,
                "member_email": s.member_email,
                "membership": s.membership_package_name,
                "type": s.type,
                "start_date": s.start_date,
                "end_date": s.end_date,
                "membership_length_days": s.membership_length_days,
                "total_amount_paid": s.total_amount_paid,
                "attended_sessions": s.attended_sessions_count,
                "total_sessions": s.total_sessions_booked,
                "utilization_rate": s.membership_utilization_rate,
                "attendance_rate": s.attendance_rate,
                "churn_reason": s.cancellation_reason or "Unknown",
                "value_realization_score": s.value_realization_score,
                "last_activity_date": s.session_start or s.created_at,
            }
            continue
        current["total_amount_paid"] = max(current["total_amount_paid"], s.total_amount_paid)
        current["attended_sessions"] = max(current["attended_sessions"], s.attended_sessions_count)
        current["total_sessions"] = max(current["total_sessions"], s.total_sessions_booked)
        if s.session_start and _later(s.session_start, current["last_activity_date"]):
            current["last_activity_date"] = s.session_start

    def end_key(row: Dict[str, Any]) -> int:
        end = parse_studio_date(row["end_date"])
        return end.toordinal() if end is not None else 0

    return sorted(members.values(), key=end_key, reverse=True)


def compute_churned(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    sessions: List[SessionRecord] = ctx.get("sessions", [])
    rows = churned_members(sessions)
    return {
        "filters": asdict(filters),
        "summary": {
            "total_churned": len(rows),
            "total_revenue_lost": sum(r["total_amount_paid"] for r in rows),
            "avg_utilization_rate": mean([r["utilization_rate"] for r in rows]),
            "avg_value_realization_score": mean([r["value_realization_score"] for r in rows]),
            "avg_revenue_per_member": safe_ratio(sum(r["total_amount_paid"] for r in rows), len(rows)),
        },
        "table": rows,
    }
