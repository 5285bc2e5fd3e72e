"""
Filter engine: stateless predicates applied identically to the subject and to
every peer, so that subject and peer numbers are always filter-consistent.

Predicates:
- Company/org scope: excluded unless the org codes match, when both sides
  define one.
- Program: excluded unless the record's resolved program id equals the
  filter's program (no-op for 'all').
- Consultant: case-insensitive substring match against consultant email or
  name (no-op for 'all').
- Date range: excluded unless the record's best-available date falls within
  [start, end] inclusive, by calendar day. Records without a resolvable date
  are excluded whenever a range is active.
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from participant_analytics.models.enums import DatePreset
from participant_analytics.models.schemas import (
    CanonicalIntervention,
    FilterCriteria,
    MonthlyPerformanceRecord,
)
from participant_analytics.services.time_bucketer import shift_month


DateRange = Tuple[date, date]


# =============================================================================
# Date presets
# =============================================================================

def resolve_preset(
    preset: DatePreset,
    today: Optional[date] = None,
    custom: Optional[DateRange] = None
) -> Optional[DateRange]:
    """
    Resolve a date preset to an inclusive calendar-day range.

    Args:
        preset: The selected preset.
        today: Reference day (default: date.today()).
        custom: Range used for DatePreset.CUSTOM.

    Returns:
        (start, end) or None for ALL_TIME (and for CUSTOM without a range).

    Example:
        >>> resolve_preset(DatePreset.THIS_QUARTER, today=date(2024, 5, 20))
        (datetime.date(2024, 4, 1), datetime.date(2024, 6, 30))
    """
    today = today or date.today()

    if preset == DatePreset.CUSTOM:
        return custom
    if preset == DatePreset.ALL_TIME:
        return None

    if preset == DatePreset.THIS_MONTH:
        first_month, last_month = today.month, today.month
    elif preset == DatePreset.THIS_QUARTER:
        first_month = 3 * ((today.month - 1) // 3) + 1
        last_month = first_month + 2
    else:
        first_month, last_month = 1, 12

    start = date(today.year, first_month, 1)
    end = shift_month(date(today.year, last_month, 1), 1) - timedelta(days=1)
    return start, end


# =============================================================================
# Predicates
# =============================================================================

def matches_company(record_code: Optional[str], caller_code: Optional[str]) -> bool:
    if record_code and caller_code:
        return record_code == caller_code
    return True


def matches_program(program_id: Optional[str], criteria: FilterCriteria) -> bool:
    wanted = criteria.program_id
    if wanted is None:
        return True
    return program_id == wanted


def matches_consultant(intervention: CanonicalIntervention, criteria: FilterCriteria) -> bool:
    query = criteria.consultant_query
    if query is None:
        return True
    haystacks = (intervention.consultantEmail, intervention.consultantName, intervention.consultantRef)
    return any(query in h.lower() for h in haystacks if h)


def within_range(d: Optional[date], date_range: Optional[DateRange]) -> bool:
    if date_range is None:
        return True
    if d is None:
        return False
    start, end = date_range
    return start <= d <= end


def month_in_range(month: Optional[date], date_range: Optional[DateRange]) -> bool:
    """Month-granular check: the calendar month of `month` overlaps the range."""
    if date_range is None:
        return True
    if month is None:
        return False
    start, end = date_range
    first = month.replace(day=1)
    last = shift_month(first, 1) - timedelta(days=1)
    return first <= end and last >= start


def intervention_passes(
    intervention: CanonicalIntervention,
    criteria: FilterCriteria,
    company_code: Optional[str] = None
) -> bool:
    """All four predicates for one canonical intervention."""
    return (
        matches_company(intervention.companyCode, company_code)
        and matches_program(intervention.programId, criteria)
        and matches_consultant(intervention, criteria)
        and within_range(intervention.best_date, criteria.dateRange)
    )


# =============================================================================
# Collection filters
# =============================================================================

def filter_interventions(
    interventions: Iterable[CanonicalIntervention],
    criteria: FilterCriteria,
    company_code: Optional[str] = None
) -> List[CanonicalIntervention]:
    return [i for i in interventions if intervention_passes(i, criteria, company_code)]


def monthly_record_passes(record: MonthlyPerformanceRecord, criteria: FilterCriteria) -> bool:
    if record.submittedAt or record.createdAt:
        return within_range(record.record_date, criteria.dateRange)
    return month_in_range(record.monthDate, criteria.dateRange)


def filter_monthly_records(
    records: Iterable[MonthlyPerformanceRecord],
    criteria: FilterCriteria
) -> List[MonthlyPerformanceRecord]:
    """
    Keep monthly records whose submission/creation (or month-derived) date is
    inside the criteria's date range. Records dated only by their month label
    pass when that month overlaps the range.
    """
    return [r for r in records if monthly_record_passes(r, criteria)]
