"""Period × dimension aggregation shared by every studio table.

``aggregate(records, config)`` runs three passes over an in-memory record
sequence:

1. accumulation: one forward pass bucketing records into ``GroupTotals``
   keyed by (period, dimension);
2. derivation: every group is projected to ``GroupMetrics`` (rates and
   averages are computed here and never written back);
3. ordering and totals: groups are sorted and a totals row is built by
   summing raw totals across groups and deriving once.

A record whose date cannot be parsed is skipped (or bucketed under
``Unknown`` when ``unknown_period`` is set) and counted; it never stops the
pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from studio_core.dates import UNKNOWN_PERIOD, Granularity, days_between, group_key, parse_studio_date, period_key, period_label
from studio_core.records import coerce_str, parse_numeric_value

logger = logging.getLogger(__name__)

CONVERTED_STATUS = "Converted"
RETAINED_STATUS = "Retained"
TOTAL_LABEL = "Total"

IntervalSource = Literal["purchase_date", "conversion_span", "none"]
DimensionSelector = Union[str, Callable[[Any], str]]


def field_value(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def is_new_value(value: object) -> bool:
    """Fuzzy new-member test: the lower-cased flag contains ``"new"``."""
    return "new" in coerce_str(value).lower()


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator * scale


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


@dataclass(frozen=True)
class AggregationConfig:
    date_field: Optional[str] = "first_visit_date"
    granularity: Granularity = "month"
    dimension: Optional[DimensionSelector] = None
    # Label for records with an empty dimension; None skips them instead.
    dimension_fallback: Optional[str] = "Unknown"
    unknown_period: bool = False
    interval_source: IntervalSource = "purchase_date"
    new_field: str = "is_new"
    conversion_field: str = "conversion_status"
    retention_field: str = "retention_status"
    ltv_field: str = "ltv"
    visits_field: str = "visits_post_trial"
    first_visit_field: str = "first_visit_date"
    purchase_field: str = "first_purchase"
    span_field: str = "conversion_span"
    sums: Mapping[str, Callable[[Any], float]] = field(default_factory=dict)
    counts: Mapping[str, Callable[[Any], bool]] = field(default_factory=dict)
    order_by: str = "period"
    # Tie-break on dimension: values flagged "new" ahead of the rest.
    new_first: bool = True


@dataclass
class GroupTotals:
    key: str
    period_key: Optional[str] = None
    period_label: Optional[str] = None
    dimension: Optional[str] = None
    total_members: int = 0
    new_members: int = 0
    converted: int = 0
    retained: int = 0
    total_ltv: float = 0.0
    conversion_intervals: List[float] = field(default_factory=list)
    visits_post_trial: List[float] = field(default_factory=list)
    sums: Dict[str, float] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    records: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class GroupMetrics:
    key: str
    period_key: Optional[str]
    period_label: Optional[str]
    dimension: Optional[str]
    total_members: int
    new_members: int
    converted: int
    retained: int
    total_ltv: float
    conversion_rate: float
    retention_rate: float
    avg_ltv: float
    avg_conversion_interval: float
    avg_visits_post_trial: float
    trials_completed: int
    sums: Dict[str, float]
    counts: Dict[str, int]
    averages: Dict[str, float]
    rates: Dict[str, float]
    records: Tuple[Any, ...] = ()

    def as_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "key": self.key,
            "period_key": self.period_key,
            "period": self.period_label,
            "dimension": self.dimension,
            "total_members": self.total_members,
            "new_members": self.new_members,
            "converted": self.converted,
            "retained": self.retained,
            "total_ltv": self.total_ltv,
            "conversion_rate": self.conversion_rate,
            "retention_rate": self.retention_rate,
            "avg_ltv": self.avg_ltv,
            "avg_conversion_interval": self.avg_conversion_interval,
            "avg_visits_post_trial": self.avg_visits_post_trial,
            "trials_completed": self.trials_completed,
        }
        row.update(self.sums)
        row.update(self.counts)
        row.update({f"avg_{name}": value for name, value in self.averages.items()})
        row.update({f"{name}_rate": value for name, value in self.rates.items()})
        return row


@dataclass(frozen=True)
class AggregationResult:
    groups: List[GroupMetrics]
    totals: GroupMetrics
    invalid_dates: int = 0
    skipped_dimension: int = 0

    def rows(self) -> List[Dict[str, Any]]:
        return [g.as_row() for g in self.groups]

    def find(self, period: Optional[str], dimension: Optional[str] = None) -> Optional[GroupMetrics]:
        for g in self.groups:
            if g.period_key == period and g.dimension == dimension:
                return g
        return None


def conversion_interval(record: Any, config: AggregationConfig) -> Optional[float]:
    if config.interval_source == "conversion_span":
        span = parse_numeric_value(field_value(record, config.span_field))
        return span if span > 0 else None
    if config.interval_source == "purchase_date":
        days = days_between(field_value(record, config.first_visit_field), field_value(record, config.purchase_field))
        return float(days) if days is not None and days >= 0 else None
    return None


def _resolve_dimension(record: Any, config: AggregationConfig) -> Optional[str]:
    if config.dimension is None:
        return None
    raw = config.dimension(record) if callable(config.dimension) else field_value(record, config.dimension)
    value = coerce_str(raw)
    if value:
        return value
    return config.dimension_fallback


def accumulate(records: Iterable[Any], config: AggregationConfig) -> Tuple[Dict[str, GroupTotals], int, int]:
    """Single forward pass; returns (groups by key, invalid-date count, skipped-dimension count)."""
    groups: Dict[str, GroupTotals] = {}
    invalid_dates = 0
    skipped_dimension = 0

    for record in records:
        p_key: Optional[str] = None
        p_label: Optional[str] = None
        if config.date_field is not None:
            raw_date = field_value(record, config.date_field)
            parsed = parse_studio_date(raw_date)
            if parsed is None:
                invalid_dates += 1
                logger.debug("Invalid %s: %r", config.date_field, raw_date)
                if not config.unknown_period:
                    continue
                p_key = p_label = UNKNOWN_PERIOD
            else:
                p_key = period_key(parsed, config.granularity)
                p_label = period_label(parsed, config.granularity)

        dimension = _resolve_dimension(record, config)
        if config.dimension is not None and dimension is None:
            skipped_dimension += 1
            continue

        key = group_key(p_key, dimension)
        stat = groups.get(key)
        if stat is None:
            stat = GroupTotals(
                key=key,
                period_key=p_key,
                period_label=p_label,
                dimension=dimension,
                sums={name: 0.0 for name in config.sums},
                counts={name: 0 for name in config.counts},
            )
            groups[key] = stat

        stat.total_members += 1
        stat.records.append(record)
        if is_new_value(field_value(record, config.new_field)):
            stat.new_members += 1
        if field_value(record, config.conversion_field) == CONVERTED_STATUS:
            stat.converted += 1
        if field_value(record, config.retention_field) == RETAINED_STATUS:
            stat.retained += 1
        stat.total_ltv += parse_numeric_value(field_value(record, config.ltv_field))

        interval = conversion_interval(record, config)
        if interval is not None:
            stat.conversion_intervals.append(interval)
        visits = parse_numeric_value(field_value(record, config.visits_field))
        if visits > 0:
            stat.visits_post_trial.append(visits)

        for name, getter in config.sums.items():
            stat.sums[name] += parse_numeric_value(getter(record))
        for name, predicate in config.counts.items():
            if predicate(record):
                stat.counts[name] += 1

    if invalid_dates:
        logger.warning("Skipped %d record(s) with unparseable %s", invalid_dates, config.date_field)
    return groups, invalid_dates, skipped_dimension


def derive_metrics(stat: GroupTotals) -> GroupMetrics:
    return GroupMetrics(
        key=stat.key,
        period_key=stat.period_key,
        period_label=stat.period_label,
        dimension=stat.dimension,
        total_members=stat.total_members,
        new_members=stat.new_members,
        converted=stat.converted,
        retained=stat.retained,
        total_ltv=stat.total_ltv,
        conversion_rate=safe_ratio(stat.converted, stat.new_members, 100.0),
        retention_rate=safe_ratio(stat.retained, stat.converted, 100.0),
        avg_ltv=safe_ratio(stat.total_ltv, stat.total_members),
        avg_conversion_interval=mean(stat.conversion_intervals),
        avg_visits_post_trial=mean(stat.visits_post_trial),
        trials_completed=len(stat.visits_post_trial),
        sums=dict(stat.sums),
        counts=dict(stat.counts),
        averages={name: safe_ratio(value, stat.total_members) for name, value in stat.sums.items()},
        rates={name: safe_ratio(value, stat.total_members, 100.0) for name, value in stat.counts.items()},
        records=tuple(stat.records),
    )


def sum_totals(groups: Iterable[GroupTotals], config: AggregationConfig) -> GroupTotals:
    total = GroupTotals(
        key=TOTAL_LABEL.lower(),
        period_label=TOTAL_LABEL,
        sums={name: 0.0 for name in config.sums},
        counts={name: 0 for name in config.counts},
    )
    for stat in groups:
        total.total_members += stat.total_members
        total.new_members += stat.new_members
        total.converted += stat.converted
        total.retained += stat.retained
        total.total_ltv += stat.total_ltv
        total.conversion_intervals.extend(stat.conversion_intervals)
        total.visits_post_trial.extend(stat.visits_post_trial)
        for name, value in stat.sums.items():
            total.sums[name] += value
        for name, value in stat.counts.items():
            total.counts[name] += value
        total.records.extend(stat.records)
    return total


def _dimension_order(g: GroupMetrics, new_first: bool = True) -> Tuple[bool, str, str]:
    dimension = g.dimension or ""
    return (new_first and not is_new_value(dimension), dimension.casefold(), dimension)


def sort_groups(groups: Iterable[GroupMetrics], order_by: str = "period", new_first: bool = True) -> List[GroupMetrics]:
    ordered = sorted(groups, key=lambda g: _dimension_order(g, new_first))
    if order_by == "period":
        return sorted(ordered, key=lambda g: g.period_key or "")
    if order_by == "period_desc":
        return sorted(ordered, key=lambda g: g.period_key or "", reverse=True)
    ordered = sorted(ordered, key=lambda g: g.period_key or "")
    if order_by == "total_members":
        return sorted(ordered, key=lambda g: g.total_members, reverse=True)
    return sorted(ordered, key=lambda g: g.sums[order_by], reverse=True)


def aggregate(records: Iterable[Any], config: Optional[AggregationConfig] = None) -> AggregationResult:
    config = config or AggregationConfig()
    if config.order_by not in {"period", "period_desc", "total_members"} and config.order_by not in config.sums:
        raise ValueError(f"Unknown order_by {config.order_by!r}; expected a period order, 'total_members' or a sum name")

    raw_groups, invalid_dates, skipped_dimension = accumulate(records, config)
    groups = sort_groups((derive_metrics(stat) for stat in raw_groups.values()), config.order_by, config.new_first)
    totals = derive_metrics(sum_totals(raw_groups.values(), config))
    return AggregationResult(
        groups=groups,
        totals=totals,
        invalid_dates=invalid_dates,
        skipped_dimension=skipped_dimension,
    )
