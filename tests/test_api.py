import pytest
from fastapi.testclient import TestClient

from studio_api import main
from studio_api.main import app


@pytest.fixture
def client(data_dir):
    return TestClient(app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_meta_filters(client):
    body = client.get("/meta/filters").json()
    assert "Kenkere House" in body["locations"]
    assert body["conversion_statuses"] == ["Converted", "Not Converted"]
    assert body["sold_by"] == ["Online/System", "Priya", "Rahul"]
    assert body["membership_types"] == ["Class Pack", "Membership"]


def test_conversion_cards_endpoint(client):
    resp = client.post("/conversion/cards", json={"locations": ["Kenkere House"]})
    assert resp.status_code == 200
    cards = {c["metric_type"]: c["value"] for c in resp.json()["cards"]}
    assert cards["converted_members"] == 1
    assert cards["new_members"] == 0
    assert cards["conversion_rate"] == 0


def test_month_on_month_endpoint(client):
    resp = client.post("/conversion/month-on-month?by=type&granularity=month", json={})
    assert resp.status_code == 200
    body = resp.json()
    assert body["by"] == "type"
    assert len(body["table"]) == 3
    assert body["filters"]["start_date"] is None


def test_month_on_month_rejects_unknown_grouping(client):
    assert client.post("/conversion/month-on-month?by=week", json={}).status_code == 422


def test_drilldown_endpoint(client):
    resp = client.post("/conversion/drilldown", json={"period_key": "2024-03"})
    assert resp.json()["count"] == 1
    bad = client.post("/conversion/drilldown", json={"metric_type": "bogus"})
    assert bad.status_code == 400
    assert bad.json()["type"] == "ValueError"


@pytest.mark.parametrize(
    "path",
    ["/patterns/overview", "/patterns/month-on-month", "/patterns/type-analysis", "/patterns/churned", "/discounts", "/debug"],
)
def test_page_endpoints(client, path):
    resp = client.post(path, json={"start_date": "2024-01-01", "end_date": "2024-12-31"})
    assert resp.status_code == 200
    assert resp.json()["filters"]["start_date"] == "2024-01-01"


def test_page_failure_returns_error_payload(client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("feed unavailable")

    monkeypatch.setattr(main, "load_dashboard_data", boom)
    resp = client.post("/discounts", json={})
    assert resp.status_code == 500
    assert resp.json() == {"error": "feed unavailable", "type": "RuntimeError"}
