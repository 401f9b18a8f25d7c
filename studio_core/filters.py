from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from studio_core.dates import parse_studio_date
from studio_core.records import ClientRecord, SalesRecord, SessionRecord, coerce_str

R = TypeVar("R")

ONLINE_SELLER = "Online/System"


@dataclass(frozen=True)
class DashboardFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    locations: List[str] = field(default_factory=list)
    trainers: List[str] = field(default_factory=list)
    conversion_statuses: List[str] = field(default_factory=list)
    retention_statuses: List[str] = field(default_factory=list)
    payment_methods: List[str] = field(default_factory=list)
    is_new_values: List[str] = field(default_factory=list)
    membership_types: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    products: List[str] = field(default_factory=list)
    sold_by: List[str] = field(default_factory=list)
    min_ltv: Optional[float] = None
    max_ltv: Optional[float] = None
    min_discount_amount: Optional[float] = None
    max_discount_amount: Optional[float] = None
    min_discount_percent: Optional[float] = None
    max_discount_percent: Optional[float] = None
    top_n: int = 15


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    out = [coerce_str(v) for v in values]
    return [v for v in out if v and not v.startswith("All ")]


def _as_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)  # type: ignore[arg-type]
    except Exception:
        return None


def normalize_filters(raw: dict) -> DashboardFilters:
    raw = raw or {}
    top_n = raw.get("top_n", 15)
    try:
        top_n = int(top_n)
    except Exception:
        top_n = 15
    top_n = max(1, min(200, top_n))

    return DashboardFilters(
        start_date=parse_studio_date(raw.get("start_date")),
        end_date=parse_studio_date(raw.get("end_date")),
        locations=_as_str_list(raw.get("locations")),
        trainers=_as_str_list(raw.get("trainers")),
        conversion_statuses=_as_str_list(raw.get("conversion_statuses")),
        retention_statuses=_as_str_list(raw.get("retention_statuses")),
        payment_methods=_as_str_list(raw.get("payment_methods")),
        is_new_values=_as_str_list(raw.get("is_new_values")),
        membership_types=_as_str_list(raw.get("membership_types")),
        categories=_as_str_list(raw.get("categories")),
        products=_as_str_list(raw.get("products")),
        sold_by=_as_str_list(raw.get("sold_by")),
        min_ltv=_as_float(raw.get("min_ltv")),
        max_ltv=_as_float(raw.get("max_ltv")),
        min_discount_amount=_as_float(raw.get("min_discount_amount")),
        max_discount_amount=_as_float(raw.get("max_discount_amount")),
        min_discount_percent=_as_float(raw.get("min_discount_percent")),
        max_discount_percent=_as_float(raw.get("max_discount_percent")),
        top_n=top_n,
    )


def location_matches(selected: str, value: str) -> bool:
    if "kenkere" in selected.lower():
        lowered = value.lower()
        return "kenkere" in lowered or "bengaluru" in lowered
    return value == selected


def _any_location(selected: Sequence[str], values: Sequence[str]) -> bool:
    return any(location_matches(s, v) for s in selected for v in values if v)


def _in_range(raw_date: str, filters: DashboardFilters) -> bool:
    if filters.start_date is None and filters.end_date is None:
        return True
    d = parse_studio_date(raw_date)
    if d is None:
        return False
    if filters.start_date is not None and d < filters.start_date:
        return False
    if filters.end_date is not None and d > filters.end_date:
        return False
    return True


def _keep(records: Iterable[R], predicate: Callable[[R], bool]) -> List[R]:
    return [r for r in records if predicate(r)]


def filter_clients(records: Iterable[ClientRecord], filters: DashboardFilters) -> List[ClientRecord]:
    def matches(c: ClientRecord) -> bool:
        if not _in_range(c.first_visit_date, filters):
            return False
        if filters.locations and not _any_location(filters.locations, [c.first_visit_location, c.home_location]):
            return False
        if filters.trainers and c.trainer_name not in filters.trainers:
            return False
        if filters.conversion_statuses and c.conversion_status not in filters.conversion_statuses:
            return False
        if filters.retention_statuses and c.retention_status not in filters.retention_statuses:
            return False
        if filters.payment_methods and c.payment_method not in filters.payment_methods:
            return False
        if filters.is_new_values and c.is_new not in filters.is_new_values:
            return False
        if filters.min_ltv is not None and c.ltv < filters.min_ltv:
            return False
        if filters.max_ltv is not None and c.ltv > filters.max_ltv:
            return False
        return True

    return _keep(records, matches)


def filter_sessions(records: Iterable[SessionRecord], filters: DashboardFilters) -> List[SessionRecord]:
    def matches(s: SessionRecord) -> bool:
        if not _in_range(s.start_date, filters):
            return False
        if filters.locations and not _any_location(filters.locations, [s.location_name]):
            return False
        if filters.membership_types and s.type not in filters.membership_types:
            return False
        if filters.trainers and s.teacher_name not in filters.trainers:
            return False
        return True

    return _keep(records, matches)


def seller_name(record: SalesRecord) -> str:
    return ONLINE_SELLER if record.sold_by == "-" else record.sold_by


def filter_sales(records: Iterable[SalesRecord], filters: DashboardFilters) -> List[SalesRecord]:
    def matches(s: SalesRecord) -> bool:
        if not _in_range(s.payment_date, filters):
            return False
        if filters.locations and not _any_location(filters.locations, [s.calculated_location]):
            return False
        if filters.categories and s.cleaned_category not in filters.categories:
            return False
        if filters.products and s.cleaned_product not in filters.products:
            return False
        if filters.sold_by and seller_name(s) not in filters.sold_by:
            return False
        if filters.payment_methods and s.payment_method not in filters.payment_methods:
            return False
        if filters.min_discount_amount is not None and s.discount_amount < filters.min_discount_amount:
            return False
        if filters.max_discount_amount is not None and s.discount_amount > filters.max_discount_amount:
            return False
        if filters.min_discount_percent is not None and s.discount_percentage < filters.min_discount_percent:
            return False
        if filters.max_discount_percent is not None and s.discount_percentage > filters.max_discount_percent:
            return False
        return True

    return _keep(records, matches)
