from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

from studio_core.data import distinct_values
from studio_core.dates import parse_studio_date
from studio_core.filters import DashboardFilters

PRIMARY_DATES = {
    "clients": "first_visit_date",
    "sessions": "start_date",
    "sales": "payment_date",
}


def _invalid_dates(records: List[Any], name: str) -> Dict[str, Any]:
    bad = [getattr(r, name) for r in records if parse_studio_date(getattr(r, name)) is None]
    return {"field": name, "count": len(bad), "sample": sorted(set(bad))[:20]}


def compute_debug(filters: DashboardFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "filters": asdict(filters),
        "files": list(ctx.get("files", []) or []),
        "row_counts": {},
        "invalid_dates": {},
        "distinct_values": {},
    }
    for feed, date_field in PRIMARY_DATES.items():
        all_rows = ctx.get(f"all_{feed}", []) or []
        payload["row_counts"][f"{feed}_rows"] = len(all_rows)
        payload["row_counts"][f"{feed}_rows_filtered"] = len(ctx.get(feed, []) or [])
        payload["invalid_dates"][feed] = _invalid_dates(all_rows, date_field)

    clients = ctx.get("all_clients", []) or []
    sessions = ctx.get("all_sessions", []) or []
    payload["distinct_values"] = {
        "conversion_status": distinct_values(clients, "conversion_status"),
        "retention_status": distinct_values(clients, "retention_status"),
        "is_new": distinct_values(clients, "is_new"),
        "membership_status": distinct_values(sessions, "membership_status"),
    }
    return payload
