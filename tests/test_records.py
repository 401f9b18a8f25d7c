import math

import pandas as pd

from studio_core.records import (
    ClientRecord,
    client_record_from_row,
    coerce_str,
    parse_bool_value,
    parse_numeric_value,
    records_from_frame,
    session_record_from_row,
)


def test_parse_numeric_value_defaults_to_zero():
    assert parse_numeric_value("1,250.5") == 1250.5
    assert parse_numeric_value(" 42 ") == 42.0
    assert parse_numeric_value("") == 0.0
    assert parse_numeric_value(None) == 0.0
    assert parse_numeric_value("n/a") == 0.0
    assert parse_numeric_value(float("nan")) == 0.0
    assert parse_numeric_value(math.inf) == 0.0
    assert parse_numeric_value(True) == 1.0


def test_parse_numeric_value_reads_leading_number():
    assert parse_numeric_value("75%") == 75.0
    assert parse_numeric_value("85.5%") == 85.5
    assert parse_numeric_value("12abc") == 12.0
    assert parse_numeric_value("-3.5 days") == -3.5
    assert parse_numeric_value(".5") == 0.5
    assert parse_numeric_value("1,200 INR") == 1200.0
    assert parse_numeric_value("abc12") == 0.0
    assert parse_numeric_value("1e400") == 0.0
    assert parse_numeric_value("²5") == 0.0


def test_percent_cells_survive_record_coercion():
    record = session_record_from_row({"membershipUtilizationRate": "85.5%", "attendanceRate": "60 %"})
    assert record.membership_utilization_rate == 85.5
    assert record.attendance_rate == 60.0


def test_parse_bool_value():
    assert parse_bool_value("TRUE") is True
    assert parse_bool_value("true") is True
    assert parse_bool_value("yes") is False
    assert parse_bool_value("") is False
    assert parse_bool_value(None) is False
    assert parse_bool_value(True) is True


def test_coerce_str_drops_null_tokens():
    assert coerce_str(None) == ""
    assert coerce_str(float("nan")) == ""
    assert coerce_str("  NaN ") == ""
    assert coerce_str(" Converted ") == "Converted"


def test_client_record_accepts_camel_and_snake_keys():
    camel = client_record_from_row({"memberId": "c1", "isNew": "New", "ltv": "1,000", "conversionSpan": "7"})
    snake = client_record_from_row({"member_id": "c1", "is_new": "New", "ltv": 1000, "conversion_span": 7})
    assert camel == snake
    assert camel.ltv == 1000.0
    assert camel.conversion_status == ""


def test_missing_fields_fall_back_to_neutral_defaults():
    record = session_record_from_row({})
    assert record.member_id == ""
    assert record.total_amount_paid == 0.0
    assert record.is_free_trial is False


def test_records_from_frame():
    df = pd.DataFrame([{"member_id": "a", "ltv": "10"}, {"member_id": "b", "ltv": None}])
    records = records_from_frame(df, client_record_from_row)
    assert [r.member_id for r in records] == ["a", "b"]
    assert [r.ltv for r in records] == [10.0, 0.0]
    assert records_from_frame(pd.DataFrame(), client_record_from_row) == []
    assert isinstance(records[0], ClientRecord)
