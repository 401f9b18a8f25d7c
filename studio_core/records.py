"""Typed rows for the three studio feeds.

Each feed row arrives loosely typed (spreadsheet cells, JSON bodies). The
``*_from_row`` helpers coerce every field once at this boundary: numbers fall
back to 0, text to ``""`` and flags to ``False``. Keys may be snake_case or
the feed's camelCase column names.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Callable, Iterable, List, Mapping, Type, TypeVar

import pandas as pd

NULL_TOKENS = {"nan", "none", "null", "<na>", "nat"}

# Leading number of a cell, so "75%" reads as 75 and "12abc" as 12.
NUMERIC_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)

R = TypeVar("R")


def parse_numeric_value(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        out = float(value)
        return 0.0 if math.isnan(out) or math.isinf(out) else out
    match = NUMERIC_PREFIX.match(str(value).replace(",", "").strip())
    if match is None:
        return 0.0
    out = float(match.group())
    return 0.0 if math.isnan(out) or math.isinf(out) else out


def parse_bool_value(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "true"


def coerce_str(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, (datetime, date)):
        if pd.isna(value):
            return ""
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    s = str(value).strip()
    if s.lower() in NULL_TOKENS:
        return ""
    return s


_COERCERS: dict = {"float": parse_numeric_value, "str": coerce_str, "bool": parse_bool_value}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _lookup(row: Mapping[str, Any], name: str) -> Any:
    if name in row:
        return row[name]
    return row.get(_camel(name))


def _from_row(cls: Type[R], row: Mapping[str, Any]) -> R:
    kwargs = {}
    for f in fields(cls):  # type: ignore[arg-type]
        coerce: Callable[[object], Any] = _COERCERS[str(f.type)]
        kwargs[f.name] = coerce(_lookup(row, f.name))
    return cls(**kwargs)


@dataclass(frozen=True)
class ClientRecord:
    """One client from the new-client conversion feed (first visit onwards)."""

    member_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    first_visit_date: str = ""
    first_visit_entity_name: str = ""
    first_visit_location: str = ""
    home_location: str = ""
    trainer_name: str = ""
    membership_used: str = ""
    is_new: str = ""
    conversion_status: str = ""
    retention_status: str = ""
    payment_method: str = ""
    first_purchase: str = ""
    ltv: float = 0.0
    conversion_span: float = 0.0
    visits_post_trial: float = 0.0


@dataclass(frozen=True)
class SessionRecord:
    """One membership/session row from the client patterns feed."""

    member_id: str = ""
    member_name: str = ""
    member_email: str = ""
    location_name: str = ""
    teacher_name: str = ""
    session_name: str = ""
    session_start: str = ""
    created_at: str = ""
    membership_package_name: str = ""
    membership_subscription_type: str = ""
    type: str = ""
    start_date: str = ""
    end_date: str = ""
    membership_status: str = ""
    cancellation_reason: str = ""
    churn_risk_assessment: str = ""
    member_engagement_level: str = ""
    payment_method: str = ""
    is_frozen: bool = False
    is_free_trial: bool = False
    is_complementary: bool = False
    total_sessions_booked: float = 0.0
    attended_sessions_count: float = 0.0
    cancelled_sessions_count: float = 0.0
    no_show_count: float = 0.0
    total_amount_paid: float = 0.0
    price_per_session_booked: float = 0.0
    price_per_session_attended: float = 0.0
    price_per_projected_session: float = 0.0
    projected_total_sessions: float = 0.0
    membership_length_days: float = 0.0
    membership_utilization_rate: float = 0.0
    attendance_rate: float = 0.0
    value_realization_score: float = 0.0
    days_until_expiry: float = 0.0


@dataclass(frozen=True)
class SalesRecord:
    """One sale line from the sales feed; discounts live on the same row."""

    payment_date: str = ""
    customer_name: str = ""
    calculated_location: str = ""
    cleaned_category: str = ""
    cleaned_product: str = ""
    sold_by: str = ""
    payment_method: str = ""
    payment_value: float = 0.0
    discount_amount: float = 0.0
    discount_percentage: float = 0.0


def field_names(cls: type, type_name: str) -> List[str]:
    return [f.name for f in fields(cls) if str(f.type) == type_name]


def client_record_from_row(row: Mapping[str, Any]) -> ClientRecord:
    return _from_row(ClientRecord, row)


def session_record_from_row(row: Mapping[str, Any]) -> SessionRecord:
    return _from_row(SessionRecord, row)


def sales_record_from_row(row: Mapping[str, Any]) -> SalesRecord:
    return _from_row(SalesRecord, row)


def records_from_rows(rows: Iterable[Mapping[str, Any]], factory: Callable[[Mapping[str, Any]], R]) -> List[R]:
    return [factory(row) for row in rows]


def records_from_frame(df: pd.DataFrame, factory: Callable[[Mapping[str, Any]], R]) -> List[R]:
    if df.empty:
        return []
    return records_from_rows(df.to_dict(orient="records"), factory)
