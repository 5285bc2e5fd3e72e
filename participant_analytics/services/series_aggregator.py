"""
Series aggregation service.

Folds the numeric facts of one participant (revenue, headcount) from the two
independent storage shapes into unified per-month and per-year series:

- the monthly performance sub-collection (one MonthlyPerformanceRecord per
  reporting period), and
- the historical maps on the participant document
  (revenueHistory.monthly / .annual, headcountHistory.monthly / .annual).

Both shapes describe complementary facts, so they are always added into the
same month_key accumulator; neither is ever picked over the other.

Annual totals come from the monthly series truncated to years. An annual
history value is only used for a year without any monthly coverage, so a year
is never counted twice.

Also builds the categorical distributions (interventions by area and status,
compliance by status) and the drill-down children of every chart.
"""

import logging
from collections import OrderedDict
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from participant_analytics.models.enums import ComplianceStatus, StatusBucket
from participant_analytics.models.schemas import (
    CanonicalIntervention,
    CategoryCount,
    DrillSeries,
    MonthlyPerformanceRecord,
    Series,
)
from participant_analytics.services.date_normalizer import (
    is_yearless_month_label,
    normalize_date,
    parse_month_label,
)
from participant_analytics.services.filter_engine import (
    DateRange,
    month_in_range,
    within_range,
)
from participant_analytics.services.time_bucketer import (
    is_year_key,
    month_key,
    month_label,
    shift_month,
    sorted_keys,
    year_key,
    year_of,
)


logger = logging.getLogger(__name__)

RecordValue = Callable[[MonthlyPerformanceRecord], float]
HistoryValue = Callable[[Any], float]


# =============================================================================
# Constants
# =============================================================================

PERMANENT = 'Permanent'
TEMPORARY = 'Temporary'

REVENUE_DRILL_PREFIX = 'revenue'
HEADCOUNT_DRILL_PREFIX = 'headcount'
AREA_DRILL_PREFIX = 'area'
STATUS_DRILL_PREFIX = 'status'

COMPLIANCE_ORDER: Sequence[ComplianceStatus] = (
    ComplianceStatus.VALID,
    ComplianceStatus.MISSING,
    ComplianceStatus.EXPIRED,
    ComplianceStatus.OTHER,
)


# =============================================================================
# Value helpers
# =============================================================================

def safe_float(value: Any) -> float:
    """
    Coerce a stored numeric value to float; anything unusable becomes 0.0.

    Example:
        >>> safe_float('1,250.5')
        1250.5
        >>> safe_float(float('nan'))
        0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.replace(',', '').strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if np.isnan(number) or np.isinf(number):
        return 0.0
    return number


def headcount_parts(value: Any) -> Tuple[float, float]:
    """
    Split a headcount history value into (permanent, temporary).

    A bare number is read as permanent headcount.
    """
    if isinstance(value, Mapping):
        return safe_float(value.get('permanent')), safe_float(value.get('temporary'))
    return safe_float(value), 0.0


def headcount_permanent(value: Any) -> float:
    return headcount_parts(value)[0]


def headcount_temporary(value: Any) -> float:
    return headcount_parts(value)[1]


def record_revenue(record: MonthlyPerformanceRecord) -> float:
    return record.revenue


# =============================================================================
# Ingestion of monthly records
# =============================================================================

def normalize_monthly_record(
    raw: Mapping[str, Any],
    reference: Optional[date] = None
) -> MonthlyPerformanceRecord:
    """Canonical MonthlyPerformanceRecord from a raw history document."""
    # rows keyed by month carry it only in their id
    month = raw.get('month') or raw.get('id')
    return MonthlyPerformanceRecord(
        id=raw.get('id'),
        createdAt=normalize_date(raw.get('createdAt')),
        submittedAt=normalize_date(raw.get('submittedAt')),
        month=str(month) if month is not None else None,
        monthDate=normalize_date(month, reference=reference),
        revenue=safe_float(raw.get('revenue')),
        headPermanent=safe_float(raw.get('headPermanent')),
        headTemporary=safe_float(raw.get('headTemporary')),
    )


def latest_record(records: Iterable[MonthlyPerformanceRecord]) -> Optional[MonthlyPerformanceRecord]:
    """Most recent record by date; undated records are ignored."""
    dated = [r for r in records if r.record_date is not None]
    if not dated:
        return None
    return max(dated, key=lambda r: r.record_date)


# =============================================================================
# Historical map labels
# =============================================================================

def resolve_history_label(
    label: Any,
    anchor: Optional[date] = None,
    reference: Optional[date] = None
) -> Optional[date]:
    """
    Resolve a historical monthly-map label to the first day of its month.

    A yearless month name ("April") resolves to the most recent such month
    strictly before the anchor's month when an anchor is given, otherwise to
    the reference year. Bare year labels carry no month and resolve to None.

    Example:
        >>> resolve_history_label('December', anchor=date(2024, 2, 10))
        datetime.date(2023, 12, 1)
    """
    text = str(label).strip() if label is not None else ''
    if not text or is_year_key(text):
        return None

    if anchor is not None and is_yearless_month_label(text):
        anchor_month = anchor.replace(day=1)
        candidate = parse_month_label(text, reference=anchor_month)
        if candidate is not None and candidate >= anchor_month:
            candidate = candidate.replace(year=candidate.year - 1)
        return candidate

    d = normalize_date(text, reference=reference)
    return d.replace(day=1) if d is not None else None


def resolve_year_label(label: Any) -> Optional[str]:
    """Year key of an annual-map label ("2024", 2024, "2024-01-01")."""
    text = str(label).strip() if label is not None else ''
    if is_year_key(text):
        return text
    d = normalize_date(text)
    return year_key(d) if d is not None else None


# =============================================================================
# Monthly fold
# =============================================================================

def fold_monthly(
    records: Iterable[MonthlyPerformanceRecord],
    historical_map: Optional[Mapping[Any, Any]],
    date_range: Optional[DateRange] = None,
    record_value: RecordValue = record_revenue,
    history_value: HistoryValue = safe_float,
    anchor: Optional[date] = None,
    reference: Optional[date] = None
) -> Dict[str, float]:
    """
    Additive month_key -> value fold of monthly records and a historical map.

    Records are placed by their best-available date; map entries by their
    resolved label. Unresolvable dates and labels are skipped.

    Args:
        records: Canonical monthly performance records.
        historical_map: label -> value map from the participant document.
        date_range: Inclusive calendar-day range, or None.
        record_value: Extracts the metric from a record.
        history_value: Extracts the metric from a map value.
        anchor: Application submission date for yearless labels.
        reference: Reference date for yearless labels without an anchor.

    Returns:
        Unsorted month_key -> summed value mapping.
    """
    acc: Dict[str, float] = {}

    for record in records or ():
        d = record.record_date
        if d is None:
            continue
        if record.submittedAt or record.createdAt:
            if not within_range(d, date_range):
                continue
        elif not month_in_range(d, date_range):
            continue
        key = month_key(d)
        acc[key] = acc.get(key, 0.0) + record_value(record)

    for label, raw_value in (historical_map or {}).items():
        d = resolve_history_label(label, anchor=anchor, reference=reference)
        if d is None or not month_in_range(d, date_range):
            continue
        key = month_key(d)
        acc[key] = acc.get(key, 0.0) + history_value(raw_value)

    return acc


def to_series(values: Mapping[str, float]) -> Series:
    categories = sorted_keys(values.keys())
    return Series(categories=categories, data=[float(values[k]) for k in categories])


def aggregate_monthly(
    records: Iterable[MonthlyPerformanceRecord],
    historical_map: Optional[Mapping[Any, Any]],
    date_range: Optional[DateRange] = None,
    value: RecordValue = record_revenue,
    history_value: HistoryValue = safe_float,
    anchor: Optional[date] = None,
    reference: Optional[date] = None
) -> Series:
    """
    Monthly series of one metric over both storage shapes.

    Example:
        >>> s = aggregate_monthly(
        ...     [MonthlyPerformanceRecord(createdAt=date(2024, 1, 5), revenue=100)],
        ...     {'2024-01': 50, '2024-02': 70},
        ...     None,
        ... )
        >>> s.categories, s.data
        (['2024-01', '2024-02'], [150.0, 70.0])
    """
    return to_series(fold_monthly(
        records,
        historical_map,
        date_range,
        record_value=value,
        history_value=history_value,
        anchor=anchor,
        reference=reference,
    ))


# =============================================================================
# Annual fold
# =============================================================================

def aggregate_annual(
    monthly_series: Series,
    annual_fallback_map: Optional[Mapping[Any, Any]] = None,
    date_range: Optional[DateRange] = None
) -> Series:
    """
    Yearly totals: months summed per year, plus annual history values for
    years with no monthly coverage at all.

    Args:
        monthly_series: Output of aggregate_monthly.
        annual_fallback_map: year label -> value map.
        date_range: When set, fallback years outside the range are dropped.

    Returns:
        Series keyed by "YYYY".
    """
    totals: Dict[str, float] = {}
    for key, value in zip(monthly_series.categories, monthly_series.data):
        year = year_of(key)
        totals[year] = totals.get(year, 0.0) + value

    covered = set(totals)
    for label, raw_value in (annual_fallback_map or {}).items():
        year = resolve_year_label(label)
        if year is None or year in covered:
            continue
        if date_range is not None and not (date_range[0].year <= int(year) <= date_range[1].year):
            continue
        totals[year] = totals.get(year, 0.0) + safe_float(raw_value)

    return to_series(totals)


def drill_id(prefix: str, key: str) -> str:
    return f"{prefix}-{key}"


def drill_years(
    annual: Series,
    monthly: Series,
    prefix: str = REVENUE_DRILL_PREFIX
) -> Tuple[Series, List[DrillSeries]]:
    """
    Attach year -> month drill-downs to an annual series.

    Years backed only by an annual history value have no months to show and
    get a None pointer.
    """
    months_by_year: Dict[str, List[Tuple[str, float]]] = OrderedDict()
    for key, value in zip(monthly.categories, monthly.data):
        months_by_year.setdefault(year_of(key), []).append((key, value))

    pointers: List[Optional[str]] = []
    children: List[DrillSeries] = []
    for year in annual.categories:
        months = months_by_year.get(year)
        if not months:
            pointers.append(None)
            continue
        child_id = drill_id(prefix, year)
        pointers.append(child_id)
        children.append(DrillSeries(
            id=child_id,
            name=year,
            categories=[k for k, _ in months],
            data=[v for _, v in months],
        ))

    return Series(categories=list(annual.categories), data=list(annual.data), drilldown=pointers), children


# =============================================================================
# Headcount breakdown
# =============================================================================

def headcount_breakdown(
    records: Iterable[MonthlyPerformanceRecord],
    historical_map: Optional[Mapping[Any, Any]],
    date_range: Optional[DateRange] = None,
    anchor: Optional[date] = None,
    reference: Optional[date] = None
) -> Tuple[Series, List[DrillSeries]]:
    """
    Monthly headcount totals with month -> {Permanent, Temporary} drill-downs,
    each part summed from both storage shapes.
    """
    records = list(records or ())
    permanent = fold_monthly(
        records, historical_map, date_range,
        record_value=lambda r: r.headPermanent,
        history_value=headcount_permanent,
        anchor=anchor, reference=reference,
    )
    temporary = fold_monthly(
        records, historical_map, date_range,
        record_value=lambda r: r.headTemporary,
        history_value=headcount_temporary,
        anchor=anchor, reference=reference,
    )

    categories = sorted_keys(list(permanent) + list(temporary))
    data: List[float] = []
    pointers: List[Optional[str]] = []
    children: List[DrillSeries] = []
    for key in categories:
        perm, temp = permanent.get(key, 0.0), temporary.get(key, 0.0)
        child_id = drill_id(HEADCOUNT_DRILL_PREFIX, key)
        data.append(perm + temp)
        pointers.append(child_id)
        children.append(DrillSeries(
            id=child_id,
            name=month_label(key),
            categories=[PERMANENT, TEMPORARY],
            data=[perm, temp],
        ))

    return Series(categories=categories, data=data, drilldown=pointers), children


# =============================================================================
# Categorical distributions
# =============================================================================

def _ranked(counts: Mapping[str, float]) -> List[Tuple[str, float]]:
    # count descending, then name for a stable order
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))


def _grouped_distribution(
    groups: Mapping[str, Mapping[str, float]],
    prefix: str
) -> Tuple[List[CategoryCount], List[DrillSeries]]:
    totals = {name: sum(titles.values()) for name, titles in groups.items()}
    top: List[CategoryCount] = []
    children: List[DrillSeries] = []
    for name, total in _ranked(totals):
        child_id = drill_id(prefix, name)
        top.append(CategoryCount(name=name, y=total, drilldown=child_id))
        ranked_titles = _ranked(groups[name])
        children.append(DrillSeries(
            id=child_id,
            name=name,
            categories=[t for t, _ in ranked_titles],
            data=[v for _, v in ranked_titles],
        ))
    return top, children


def interventions_by_area(
    interventions: Iterable[CanonicalIntervention]
) -> Tuple[List[CategoryCount], List[DrillSeries]]:
    """Completed interventions per area, drilling into per-title counts."""
    groups: Dict[str, Dict[str, float]] = {}
    for i in interventions:
        if i.status != StatusBucket.COMPLETED.value:
            continue
        titles = groups.setdefault(i.area, {})
        titles[i.title] = titles.get(i.title, 0.0) + 1
    return _grouped_distribution(groups, AREA_DRILL_PREFIX)


def interventions_by_status(
    interventions: Iterable[CanonicalIntervention]
) -> Tuple[List[CategoryCount], List[DrillSeries]]:
    """All interventions per status bucket, drilling into per-title counts."""
    groups: Dict[str, Dict[str, float]] = {}
    for i in interventions:
        titles = groups.setdefault(i.status, {})
        titles[i.title] = titles.get(i.title, 0.0) + 1
    return _grouped_distribution(groups, STATUS_DRILL_PREFIX)


def compliance_counts(documents: Iterable[Any]) -> Dict[str, float]:
    """Document count per compliance status label (all four labels present)."""
    counts: Dict[str, float] = {status.label: 0.0 for status in COMPLIANCE_ORDER}
    for doc in documents or ():
        raw = doc.get('status') if isinstance(doc, Mapping) else doc
        status = ComplianceStatus.from_raw(raw)
        counts[status.label] += 1
    return counts


def compliance_distribution(documents: Iterable[Any]) -> List[CategoryCount]:
    """
    Compliance documents by status in fixed order, zero counts omitted.

    Example:
        >>> [(c.name, c.y) for c in compliance_distribution(
        ...     [{'status': 'valid'}, {'status': 'valid'}, {'status': 'expired'}])]
        [('Valid', 2.0), ('Expired', 1.0)]
    """
    return category_counts(compliance_counts(documents))


def category_counts(values: Mapping[str, float]) -> List[CategoryCount]:
    """CategoryCount list from a name -> value map, zero values omitted."""
    return [CategoryCount(name=name, y=value) for name, value in values.items() if value]


def distribution_map(items: Iterable[CategoryCount]) -> Dict[str, float]:
    return {c.name: c.y for c in items}


# =============================================================================
# Alignment
# =============================================================================

def align_series(series: Series, categories: Sequence[str]) -> Series:
    """
    Re-express a series on another category axis; missing categories are 0.

    Example:
        >>> align_series(Series(categories=['2024-02'], data=[5.0]), ['2024-01', '2024-02']).data
        [0.0, 5.0]
    """
    values = series.value_map()
    return Series(categories=list(categories), data=[float(values.get(k, 0.0)) for k in categories])


def align_distribution(
    distribution: Iterable[CategoryCount],
    names: Sequence[str]
) -> List[CategoryCount]:
    """
    Peer distribution ordered like the subject's: the subject's names first
    (missing -> 0), then peer-only names in their own order.
    """
    values = OrderedDict((c.name, c.y) for c in distribution)
    known = set(names)
    ordered = [CategoryCount(name=n, y=float(values.get(n, 0.0))) for n in names]
    ordered.extend(CategoryCount(name=n, y=v) for n, v in values.items() if n not in known)
    return ordered


# =============================================================================
# Peer mean accumulation
# =============================================================================

class MeanAccumulator:
    """
    Per-bucket (sum, count) accumulator.

    Each bucket divides by the number of contributions it actually received,
    so a bucket only one peer reports is that peer's value, and an empty
    bucket is 0.
    """

    def __init__(self) -> None:
        self._sums: Dict[str, float] = OrderedDict()
        self._counts: Dict[str, int] = {}

    def add(self, key: str, value: float) -> None:
        self._sums[key] = self._sums.get(key, 0.0) + float(value)
        self._counts[key] = self._counts.get(key, 0) + 1

    def add_map(self, values: Mapping[str, float]) -> None:
        for key, value in values.items():
            self.add(key, value)

    def means(self) -> Dict[str, float]:
        keys = list(self._sums)
        if not keys:
            return {}
        sums = np.array([self._sums[k] for k in keys], dtype=float)
        counts = np.array([self._counts.get(k, 0) for k in keys], dtype=float)
        averaged = np.divide(sums, counts, out=np.zeros_like(sums), where=counts > 0)
        return OrderedDict((k, float(v)) for k, v in zip(keys, averaged))

    def to_series(self) -> Series:
        return to_series(self.means())


# =============================================================================
# Baseline
# =============================================================================

def baseline_months(submitted_at: Optional[date], n: int = 3) -> List[date]:
    """
    First days of the n months before the submission month, oldest first.

    Example:
        >>> baseline_months(date(2024, 2, 14))
        [datetime.date(2023, 11, 1), datetime.date(2023, 12, 1), datetime.date(2024, 1, 1)]
    """
    if submitted_at is None or n <= 0:
        return []
    start = submitted_at.replace(day=1)
    return [shift_month(start, -offset) for offset in range(n, 0, -1)]


def covered_months(
    historical_map: Optional[Mapping[Any, Any]],
    anchor: Optional[date] = None,
    reference: Optional[date] = None
) -> List[str]:
    keys = []
    for label in (historical_map or {}):
        d = resolve_history_label(label, anchor=anchor, reference=reference)
        if d is not None:
            keys.append(month_key(d))
    return keys


def baseline_warning(
    submitted_at: Optional[date],
    revenue_monthly: Optional[Mapping[Any, Any]],
    headcount_monthly: Optional[Mapping[Any, Any]],
    n: int = 3
) -> Optional[str]:
    """
    Warning naming the expected baseline months that neither historical map
    reports, or None when all are present (or there is no submission date).
    """
    months = baseline_months(submitted_at, n)
    if not months:
        return None

    present = set(covered_months(revenue_monthly, anchor=submitted_at))
    present.update(covered_months(headcount_monthly, anchor=submitted_at))
    missing = [m for m in months if month_key(m) not in present]
    if not missing:
        return None

    expected = ', '.join(month_label(month_key(m)) for m in months)
    names = ', '.join(m.strftime('%B') for m in missing)
    logger.info(f"Baseline incomplete: expected {expected}, missing {names}")
    return f"Baseline expects: {expected}. Missing entries for: {names}."