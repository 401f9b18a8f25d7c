from __future__ import annotations

import re
from datetime import date, datetime
from typing import Literal, Optional

import pandas as pd

Granularity = Literal["month", "year"]

UNKNOWN_PERIOD = "Unknown"

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_TIME_SUFFIX = re.compile(r"[,\s]")
_SLASHED = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})", re.ASCII)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_slashed(text: str) -> Optional[date]:
    date_part = _TIME_SUFFIX.split(text, maxsplit=1)[0]
    match = _SLASHED.fullmatch(date_part)
    if match is None:
        return None
    first, second, year = (int(g) for g in match.groups())
    # DD/MM/YYYY wins; MM/DD/YYYY only when the former is not a calendar date.
    return _build_date(year, second, first) or _build_date(year, first, second)


def parse_studio_date(value: object) -> Optional[date]:
    """Normalize a feed date (``DD/MM/YYYY[, HH:MM:SS]`` or ISO-like) to a ``date``.

    Returns ``None`` when the value cannot be read as a calendar date.
    """
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        if pd.isna(value):
            return None
        return value.date() if isinstance(value, datetime) else value
    text = str(value).strip()
    if not text:
        return None
    if "/" in text:
        return _parse_slashed(text)
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    if not 1000 <= parsed.year <= 9999:
        return None
    return parsed.date()


def period_key(d: date, granularity: Granularity = "month") -> str:
    if granularity == "year":
        return f"{d.year:04d}"
    return f"{d.year:04d}-{d.month:02d}"


def period_label(d: date, granularity: Granularity = "month") -> str:
    if granularity == "year":
        return f"{d.year:04d}"
    return f"{MONTH_ABBR[d.month - 1]} {d.year:04d}"


def group_key(period: Optional[str], dimension: Optional[str]) -> str:
    if period is None:
        return dimension or ""
    if dimension is None:
        return period
    return f"{period}-{dimension}"


def days_between(start: object, end: object) -> Optional[int]:
    """Whole days from ``start`` to ``end`` when both parse, else ``None``."""
    start_date = parse_studio_date(start)
    end_date = parse_studio_date(end)
    if start_date is None or end_date is None:
        return None
    return (end_date - start_date).days
