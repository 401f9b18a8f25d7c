import pytest

from studio_core.data import prepare_context
from studio_core.filters import DashboardFilters
from studio_core.metrics_patterns import (
    compute_churned,
    compute_patterns_month_on_month,
    compute_patterns_overview,
    compute_type_analysis,
    is_churned,
)
from studio_core.records import SessionRecord


@pytest.fixture
def ctx(data_ctx):
    return prepare_context(DashboardFilters(), data_ctx)


def test_is_churned():
    assert is_churned(SessionRecord(membership_status="Expired"))
    assert is_churned(SessionRecord(membership_status="Frozen", days_until_expiry=-1))
    assert not is_churned(SessionRecord(membership_status="Active", days_until_expiry=3))
    assert not is_churned(SessionRecord(membership_status="", days_until_expiry=-3))


def test_patterns_overview(ctx):
    payload = compute_patterns_overview(DashboardFilters(), ctx)
    kpis = payload["kpis"]
    assert kpis["total_members"] == 4
    assert kpis["active_members"] == 2
    assert kpis["total_revenue"] == pytest.approx(21500.0)
    assert kpis["avg_attendance_rate"] == pytest.approx(79.0)
    assert kpis["high_risk_members"] == 1
    assert kpis["avg_utilization_rate"] == pytest.approx(55.0)
    assert payload["tables"]["revenue_by_type"][0] == {"type": "Class Pack", "revenue": 11500.0}
    assert {row["membership_status"]: row["count"] for row in payload["tables"]["status_distribution"]} == {
        "Expired": 1,
        "Active": 2,
        "Cancelled": 1,
    }
    assert [row["period"] for row in payload["tables"]["utilization_trend"]] == ["Jan 2024", "Feb 2024"]
    assert set(payload["charts"]) == {"revenue_by_type", "status_distribution", "engagement_distribution", "utilization_trend"}


def test_patterns_month_on_month(ctx):
    payload = compute_patterns_month_on_month(DashboardFilters(), ctx)
    assert [(row["period"], row["membership"]) for row in payload["table"]] == [
        ("Jan 2024", "Studio 8 Pack"),
        ("Jan 2024", "Unlimited Month"),
        ("Feb 2024", "Studio 8 Pack"),
    ]
    pack = payload["table"][0]
    assert pack["total_members"] == 2
    assert pack["avg_attended_classes"] == pytest.approx(6.5)
    assert pack["revenue_from_attended"] == pytest.approx(6500.0)
    assert pack["revenue_from_booked"] == pytest.approx(8000.0)
    assert pack["utilization_rate"] == pytest.approx(75.0)
    totals = payload["totals"]
    assert totals["membership"] == "All Memberships"
    assert totals["total_members"] == 4
    assert totals["revenue_from_attended"] == pytest.approx(16500.0)
    assert payload["invalid_dates"] == 1


def test_type_analysis(ctx):
    payload = compute_type_analysis(DashboardFilters(), ctx)
    assert [row["type"] for row in payload["table"]] == ["Class Pack", "Membership", "Unknown"]
    class_pack = payload["table"][0]
    assert class_pack["churned_members"] == 3
    assert class_pack["churn_rate"] == pytest.approx(100.0)
    assert class_pack["avg_revenue"] == pytest.approx(11500.0 / 3)
    totals = payload["totals"]
    assert totals["type"] == "Total"
    assert totals["total_members"] == 5
    assert totals["active_members"] == 2
    assert totals["churn_rate"] == pytest.approx(60.0)


def test_churned_members_deduplicated(ctx):
    payload = compute_churned(DashboardFilters(), ctx)
    rows = payload["table"]
    assert [r["member_id"] for r in rows] == ["m3", "m1"]
    m1 = rows[1]
    assert m1["total_amount_paid"] == 4500.0
    assert m1["attended_sessions"] == 7.0
    assert m1["last_activity_date"] == "20/01/2024"
    assert m1["churn_reason"] == "Moved away"
    summary = payload["summary"]
    assert summary["total_churned"] == 2
    assert summary["total_revenue_lost"] == pytest.approx(7500.0)
    assert summary["avg_utilization_rate"] == pytest.approx(50.0)


def test_patterns_pages_on_empty_selection():
    empty = {"sessions": []}
    assert compute_patterns_overview(DashboardFilters(), empty)["kpis"]["total_members"] == 0
    assert compute_patterns_month_on_month(DashboardFilters(), empty)["table"] == []
    assert compute_type_analysis(DashboardFilters(), empty)["totals"]["churn_rate"] == 0.0
    assert compute_churned(DashboardFilters(), empty)["table"] == []
