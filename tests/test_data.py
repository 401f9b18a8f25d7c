import pandas as pd

from studio_core import data as data_module
from studio_core.data import coerce_str_safe, load_dashboard_data, normalize_column, numericize, prepare_context


def test_normalize_column():
    assert normalize_column("firstVisitDate") == "first_visit_date"
    assert normalize_column("Member ID") == "member_id"
    assert normalize_column("LTV") == "ltv"
    assert normalize_column(" isNew ") == "is_new"


def test_load_dashboard_data_reads_every_feed(data_ctx):
    assert sorted(data_ctx["files"]) == ["new_clients.csv", "sales.csv", "sessions.csv"]
    assert len(data_ctx["clients"]) == 4
    assert len(data_ctx["sessions"]) == 5
    assert len(data_ctx["sales"]) == 4
    first = data_ctx["clients"][0]
    assert first.member_id == "c1"
    assert first.ltv == 1200.0
    assert first.first_visit_date == "01/02/2024"


def test_load_dashboard_data_is_cached_on_file_signature(data_dir):
    assert load_dashboard_data() is load_dashboard_data()


def test_load_dashboard_data_without_exports(tmp_path, monkeypatch):
    monkeypatch.setattr(data_module, "DATA_DIR", tmp_path)
    ctx = load_dashboard_data()
    assert ctx == {"files": [], "clients": [], "sessions": [], "sales": []}


def test_unreadable_export_is_skipped(data_dir, caplog):
    (data_dir / "sales_broken.xlsx").write_bytes(b"not a workbook")
    data_module._load_dashboard_data_cached.cache_clear()
    ctx = load_dashboard_data()
    assert len(ctx["sales"]) == 4
    assert "Failed to read sales export" in caplog.text


def test_prepare_context_filters_each_feed(data_ctx):
    ctx = prepare_context({"locations": ["Kenkere House"]}, data_ctx)
    assert [c.member_id for c in ctx["clients"]] == ["c2"]
    assert [s.member_id for s in ctx["sessions"]] == ["m2"]
    assert [s.customer_name for s in ctx["sales"]] == ["Ben"]
    assert len(ctx["all_clients"]) == 4


def test_numericize_reads_leading_numbers():
    df = pd.DataFrame({"rate": ["75%", "1,200", "", None, "n/a", "-2 days"], "name": ["a"] * 6})
    out = numericize(df, ["rate", "missing"])
    assert out["rate"].tolist() == [75.0, 1200.0, 0.0, 0.0, 0.0, -2.0]
    assert out["name"].tolist() == ["a"] * 6


def test_coerce_str_safe_blanks_null_tokens():
    df = pd.DataFrame({"status": [" Active ", "nan", None, "NULL", 12]})
    out = coerce_str_safe(df, ["status"])
    assert out["status"].tolist() == ["Active", "", "", "", "12"]


def test_loaded_sessions_keep_percent_cells(data_ctx):
    m2 = next(s for s in data_ctx["sessions"] if s.member_id == "m2")
    assert m2.membership_utilization_rate == 90.0
    assert m2.attendance_rate == 85.0
