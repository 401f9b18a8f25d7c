from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple

import pandas as pd

from studio_core.filters import DashboardFilters, filter_clients, filter_sales, filter_sessions, normalize_filters
from studio_core.records import (
    NULL_TOKENS,
    NUMERIC_PREFIX,
    ClientRecord,
    SalesRecord,
    SessionRecord,
    client_record_from_row,
    coerce_str,
    field_names,
    records_from_frame,
    sales_record_from_row,
    session_record_from_row,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.getenv("STUDIO_DATA_DIR") or Path(__file__).resolve().parents[1] / "data")

FEED_GLOBS: Dict[str, Tuple[str, ...]] = {
    "clients": ("new_clients*.csv", "new_clients*.xlsx"),
    "sessions": ("sessions*.csv", "sessions*.xlsx"),
    "sales": ("sales*.csv", "sales*.xlsx"),
}

FEED_RECORDS: Dict[str, type] = {
    "clients": ClientRecord,
    "sessions": SessionRecord,
    "sales": SalesRecord,
}

FEED_FACTORIES: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    "clients": client_record_from_row,
    "sessions": session_record_from_row,
    "sales": sales_record_from_row,
}

# Export headers that do not normalize to the record field name on their own.
CLIENT_COLUMNS = {
    "Member Id": "member_id",
    "Client ID": "member_id",
    "First Visit": "first_visit_date",
    "First Visit Entity": "first_visit_entity_name",
    "Class": "first_visit_entity_name",
    "Trainer": "trainer_name",
    "Is New": "is_new",
    "LTV": "ltv",
    "Lifetime Value": "ltv",
    "Conversion Span (days)": "conversion_span",
}

SESSION_COLUMNS = {
    "Location": "location_name",
    "Teacher": "teacher_name",
    "Package": "membership_package_name",
    "Membership Type": "type",
    "Status": "membership_status",
    "Utilization Rate": "membership_utilization_rate",
}

SALES_COLUMNS = {
    "Date": "payment_date",
    "Location": "calculated_location",
    "Category": "cleaned_category",
    "Product": "cleaned_product",
    "Seller": "sold_by",
    "Discount": "discount_amount",
    "Discount %": "discount_percentage",
}

FEED_COLUMNS: Dict[str, Dict[str, str]] = {
    "clients": CLIENT_COLUMNS,
    "sessions": SESSION_COLUMNS,
    "sales": SALES_COLUMNS,
}

_NUMERIC_CELL = f"^({NUMERIC_PREFIX.pattern})"

_NON_WORD = re.compile(r"[^0-9A-Za-z]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_column(name: object) -> str:
    text = _NON_WORD.sub("_", str(name).strip())
    text = _CAMEL_BOUNDARY.sub("_", text)
    return text.strip("_").lower()


def normalize_columns(df: pd.DataFrame, rename: Mapping[str, str]) -> pd.DataFrame:
    df = df.rename(columns={k: v for k, v in rename.items() if k in df.columns})
    df.columns = [normalize_column(c) for c in df.columns]
    return df.loc[:, ~df.columns.duplicated()]


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            text = df[col].astype("string").str.replace(",", "", regex=False).str.strip()
            number = text.str.extract(_NUMERIC_CELL, flags=re.ASCII, expand=False)
            df[col] = pd.to_numeric(number, errors="coerce").astype(float).fillna(0.0)
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").str.strip()
            series = series.mask(series.str.lower().isin(NULL_TOKENS), "")
            df[col] = series.fillna("").astype(object)
    return df


def coerce_feed_frame(feed: str, df: pd.DataFrame) -> pd.DataFrame:
    cls = FEED_RECORDS[feed]
    df = numericize(df, field_names(cls, "float"))
    return coerce_str_safe(df, field_names(cls, "str"))


def get_source_files() -> Dict[str, List[Path]]:
    out: Dict[str, List[Path]] = {}
    for feed, patterns in FEED_GLOBS.items():
        paths = {p for pattern in patterns for p in DATA_DIR.glob(pattern)}
        out[feed] = sorted(paths)
    return out


def file_signature(files: List[Path]) -> Tuple[Tuple[str, float], ...]:
    return tuple((str(f), f.stat().st_mtime) for f in files)


def read_export(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in {".xlsx", ".xls"}:
        return pd.read_excel(path)
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def load_feed(feed: str, files_sig: Tuple[Tuple[str, float], ...]) -> List[Any]:
    frames: List[pd.DataFrame] = []
    for name, _ in files_sig:
        try:
            df = read_export(Path(name))
        except Exception:
            logger.exception("Failed to read %s export %s", feed, name)
            continue
        frames.append(normalize_columns(df, FEED_COLUMNS[feed]))
    if not frames:
        return []
    combined = coerce_feed_frame(feed, pd.concat(frames, ignore_index=True, sort=False))
    records = records_from_frame(combined, FEED_FACTORIES[feed])
    logger.info("Loaded %d %s record(s) from %d file(s)", len(records), feed, len(frames))
    return records


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(feeds_sig: Tuple[Tuple[str, Tuple[Tuple[str, float], ...]], ...]) -> Dict[str, object]:
    ctx: Dict[str, object] = {"files": [Path(name).name for _, sig in feeds_sig for name, _ in sig]}
    for feed, sig in feeds_sig:
        ctx[feed] = load_feed(feed, sig)
    return ctx


def load_dashboard_data() -> Dict[str, object]:
    files = get_source_files()
    if not any(files.values()):
        return {"files": [], "clients": [], "sessions": [], "sales": []}
    return _load_dashboard_data_cached(tuple((feed, file_signature(paths)) for feed, paths in files.items()))


def distinct_values(records: Iterable[Any], name: str) -> List[str]:
    values = {coerce_str(getattr(r, name, None)) for r in records}
    return sorted(v for v in values if v)


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    if not isinstance(filters, DashboardFilters):
        filters = normalize_filters(filters)

    clients: List[ClientRecord] = list(data_ctx.get("clients", []) or [])
    sessions: List[SessionRecord] = list(data_ctx.get("sessions", []) or [])
    sales: List[SalesRecord] = list(data_ctx.get("sales", []) or [])

    return {
        "files": data_ctx.get("files", []),
        "all_clients": clients,
        "all_sessions": sessions,
        "all_sales": sales,
        "clients": filter_clients(clients, filters),
        "sessions": filter_sessions(sessions, filters),
        "sales": filter_sales(sales, filters),
    }
