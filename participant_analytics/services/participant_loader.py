"""
Participant loading and per-participant metric folding.

load_participant_snapshot() fetches every record the analytics need for one
participant (participant document, application, the four intervention
sources, the monthly performance history) with independent reads issued
concurrently. build_participant_metrics() turns a snapshot into series,
distributions and KPIs under one FilterCriteria.

Both are used for the subject and for every peer, so subject and peer numbers
are always computed the same way.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from participant_analytics.core.errors import ParticipantNotFoundError
from participant_analytics.core.record_store import (
    APPLICATIONS,
    ASSIGNED_INTERVENTIONS,
    INTERVENTIONS_DATABASE,
    PARTICIPANTS,
    RecordStore,
    monthly_history_collection,
    where,
)
from participant_analytics.models.enums import InterventionSource
from participant_analytics.models.schemas import (
    CanonicalIntervention,
    CategoryCount,
    DrillSeries,
    FilterCriteria,
    MonthlyPerformanceRecord,
    ParticipantKPIs,
    Series,
)
from participant_analytics.services.date_normalizer import normalize_date
from participant_analytics.services.filter_engine import (
    filter_interventions,
    filter_monthly_records,
)
from participant_analytics.services.intervention_merger import (
    count_completed,
    log_bad_records,
    merge_interventions,
    normalize_intervention,
)
from participant_analytics.services.series_aggregator import (
    aggregate_annual,
    aggregate_monthly,
    baseline_warning,
    compliance_distribution,
    drill_years,
    headcount_breakdown,
    interventions_by_area,
    interventions_by_status,
    latest_record,
    normalize_monthly_record,
)


logger = logging.getLogger(__name__)

# Marks a prefetched slot that was not supplied (None is a valid "no document")
NOT_LOADED: Any = object()


# =============================================================================
# Snapshot
# =============================================================================

def _mapping(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _list(value: Any) -> List[Any]:
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class ParticipantSnapshot:
    """Raw documents of one participant, as read from the record store."""
    participant_id: str
    participant: Dict[str, Any] = field(default_factory=dict)
    application: Optional[Dict[str, Any]] = None
    assigned: List[Dict[str, Any]] = field(default_factory=list)
    database: List[Dict[str, Any]] = field(default_factory=list)
    monthly: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.participant) or self.application is not None

    @property
    def application_data(self) -> Dict[str, Any]:
        return self.application or {}

    @property
    def display_name(self) -> str:
        return (
            _text(self.participant.get('beneficiaryName'))
            or _text(self.application_data.get('beneficiaryName'))
            or _text(self.participant.get('name'))
            or self.participant_id
        )

    @property
    def program_id(self) -> Optional[str]:
        return _text(self.application_data.get('programId')) or _text(self.participant.get('programId'))

    @property
    def company_code(self) -> Optional[str]:
        return _text(self.participant.get('companyCode')) or _text(self.application_data.get('companyCode'))

    @property
    def submitted_at(self) -> Optional[date]:
        app = self.application_data
        return normalize_date(app.get('submittedAt')) or normalize_date(app.get('createdAt'))

    @property
    def gender(self) -> Optional[str]:
        return _text(self.participant.get('gender')) or _text(self.application_data.get('gender'))

    @property
    def sector(self) -> Optional[str]:
        return _text(self.participant.get('sector')) or _text(self.application_data.get('sector'))

    @property
    def required(self) -> List[Any]:
        return _list(_mapping(self.application_data.get('interventions')).get('required'))

    @property
    def completed(self) -> List[Any]:
        return _list(_mapping(self.application_data.get('interventions')).get('completed'))

    @property
    def compliance_documents(self) -> List[Any]:
        docs = _list(self.participant.get('complianceDocuments'))
        return docs or _list(self.application_data.get('complianceDocuments'))

    def history(self, name: str, period: str) -> Dict[Any, Any]:
        """participant[name][period], e.g. history('revenueHistory', 'monthly')."""
        return _mapping(_mapping(self.participant.get(name)).get(period))

    def belongs_to(self, company_code: Optional[str]) -> bool:
        """False when the caller's org differs from the participant's or application's."""
        if not company_code:
            return True
        codes = {
            _text(self.participant.get('companyCode')),
            _text(self.application_data.get('companyCode')),
        }
        codes.discard(None)
        return all(code == company_code for code in codes)


# =============================================================================
# Loading
# =============================================================================

async def find_participant(store: RecordStore, participant_id: str) -> Optional[Dict[str, Any]]:
    """By document id, else by the participantId field."""
    doc = await store.get(PARTICIPANTS, participant_id)
    if doc is not None:
        return doc
    matches = await store.query(PARTICIPANTS, [where('participantId', '==', participant_id)], limit=1)
    return matches[0] if matches else None


async def find_application(store: RecordStore, participant_id: str) -> Optional[Dict[str, Any]]:
    matches = await store.query(APPLICATIONS, [where('participantId', '==', participant_id)], limit=1)
    return matches[0] if matches else None


async def load_participant_snapshot(
    store: RecordStore,
    participant_id: str,
    participant: Any = NOT_LOADED,
    application: Any = NOT_LOADED
) -> ParticipantSnapshot:
    """
    Read every document the analytics need for one participant.

    Args:
        store: Record store.
        participant_id: Participant document id (or participantId field).
        participant: Prefetched participant document (None = known missing).
        application: Prefetched application document (None = known missing).

    Returns:
        ParticipantSnapshot; snapshot.found is False when neither a
        participant nor an application exists.

    Raises:
        RecordStoreError: If any read fails.
    """
    if participant is NOT_LOADED:
        participant = await find_participant(store, participant_id)
    pid = participant_id

    async def _application() -> Optional[Dict[str, Any]]:
        if application is not NOT_LOADED:
            return application
        return await find_application(store, pid)

    app, assigned, database, monthly = await asyncio.gather(
        _application(),
        store.query(ASSIGNED_INTERVENTIONS, [where('participantId', '==', pid)]),
        store.query(INTERVENTIONS_DATABASE, [where('participantId', '==', pid)]),
        store.query(monthly_history_collection(pid)),
    )

    return ParticipantSnapshot(
        participant_id=pid,
        participant=participant or {},
        application=app,
        assigned=assigned,
        database=database,
        monthly=monthly,
    )


async def load_subject(
    store: RecordStore,
    participant_id: str,
    company_code: Optional[str] = None
) -> ParticipantSnapshot:
    """
    Snapshot of the requested participant.

    Raises:
        ParticipantNotFoundError: If nothing exists for the id, or the records
            belong to another organization.
    """
    snapshot = await load_participant_snapshot(store, participant_id)
    if not snapshot.found:
        raise ParticipantNotFoundError(participant_id)
    if not snapshot.belongs_to(company_code):
        logger.warning(f"Participant {participant_id} requested outside its organization")
        raise ParticipantNotFoundError(participant_id)
    return snapshot


# =============================================================================
# Metrics
# =============================================================================

@dataclass
class ParticipantMetrics:
    """Everything computed from one snapshot under one FilterCriteria."""
    interventions: List[CanonicalIntervention] = field(default_factory=list)
    filtered_interventions: List[CanonicalIntervention] = field(default_factory=list)
    monthly_records: List[MonthlyPerformanceRecord] = field(default_factory=list)
    revenue_monthly: Series = field(default_factory=Series)
    revenue_annual: Series = field(default_factory=Series)
    revenue_drilldown: List[DrillSeries] = field(default_factory=list)
    headcount_monthly: Series = field(default_factory=Series)
    headcount_drilldown: List[DrillSeries] = field(default_factory=list)
    by_area: List[CategoryCount] = field(default_factory=list)
    by_area_drilldown: List[DrillSeries] = field(default_factory=list)
    by_status: List[CategoryCount] = field(default_factory=list)
    by_status_drilldown: List[DrillSeries] = field(default_factory=list)
    compliance: List[CategoryCount] = field(default_factory=list)
    kpis: ParticipantKPIs = field(default_factory=ParticipantKPIs)
    warnings: List[str] = field(default_factory=list)


def participation_rate(completed: int, required: int) -> int:
    """
    min(100, round(completed / required * 100)), or 0 without requirements.

    Halves round up.

    Example:
        >>> participation_rate(2, 4)
        50
    """
    if required <= 0:
        return 0
    return min(100, int(math.floor(completed / required * 100 + 0.5)))


def current_headcount(
    filtered: List[MonthlyPerformanceRecord],
    all_records: List[MonthlyPerformanceRecord]
) -> float:
    """permanent + temporary of the latest record, preferring the filtered set."""
    latest = latest_record(filtered) or latest_record(all_records)
    if latest is None:
        return 0.0
    return latest.headPermanent + latest.headTemporary


def build_participant_metrics(
    snapshot: ParticipantSnapshot,
    filters: FilterCriteria,
    company_code: Optional[str] = None,
    reference: Optional[date] = None,
    baseline_months: int = 3,
    log_bad: bool = False
) -> ParticipantMetrics:
    """
    Merge, filter and aggregate one participant's records.

    Args:
        snapshot: Loaded documents.
        filters: Scoping applied to interventions and monthly records.
        company_code: Caller's organization code.
        reference: Reference date for yearless labels without an application
            submission date (default: today).
        baseline_months: Months before submission checked for baseline data.
        log_bad: Log incomplete assigned interventions.

    Returns:
        ParticipantMetrics.
    """
    program_id = snapshot.program_id
    org_code = snapshot.company_code
    anchor = snapshot.submitted_at
    date_range = filters.dateRange

    interventions = merge_interventions(
        [snapshot.required, snapshot.completed, snapshot.assigned, snapshot.database],
        default_program_id=program_id,
        default_company_code=org_code,
    )
    if log_bad and snapshot.assigned:
        assigned = [normalize_intervention(raw, InterventionSource.ASSIGNED) for raw in snapshot.assigned]
        log_bad_records(assigned, snapshot.participant_id)

    filtered = filter_interventions(interventions, filters, company_code)

    records = [normalize_monthly_record(raw, reference=anchor or reference) for raw in snapshot.monthly]
    filtered_records = filter_monthly_records(records, filters)

    revenue_monthly = aggregate_monthly(
        filtered_records,
        snapshot.history('revenueHistory', 'monthly'),
        date_range,
        anchor=anchor,
        reference=reference,
    )
    revenue_annual = aggregate_annual(
        revenue_monthly,
        snapshot.history('revenueHistory', 'annual'),
        date_range,
    )
    revenue_annual, revenue_drilldown = drill_years(revenue_annual, revenue_monthly)

    headcount_monthly, headcount_drilldown = headcount_breakdown(
        filtered_records,
        snapshot.history('headcountHistory', 'monthly'),
        date_range,
        anchor=anchor,
        reference=reference,
    )

    by_area, by_area_drilldown = interventions_by_area(filtered)
    by_status, by_status_drilldown = interventions_by_status(filtered)

    required = len(snapshot.required)
    completed = count_completed(filtered)
    kpis = ParticipantKPIs(
        requiredInterventions=required,
        completedInterventions=completed,
        participationRate=participation_rate(completed, required),
        currentHeadcount=current_headcount(filtered_records, records),
    )

    warnings: List[str] = []
    warning = baseline_warning(
        anchor,
        snapshot.history('revenueHistory', 'monthly'),
        snapshot.history('headcountHistory', 'monthly'),
        n=baseline_months,
    )
    if warning:
        warnings.append(warning)

    return ParticipantMetrics(
        interventions=interventions,
        filtered_interventions=filtered,
        monthly_records=filtered_records,
        revenue_monthly=revenue_monthly,
        revenue_annual=revenue_annual,
        revenue_drilldown=revenue_drilldown,
        headcount_monthly=headcount_monthly,
        headcount_drilldown=headcount_drilldown,
        by_area=by_area,
        by_area_drilldown=by_area_drilldown,
        by_status=by_status,
        by_status_drilldown=by_status_drilldown,
        compliance=compliance_distribution(snapshot.compliance_documents),
        kpis=kpis,
        warnings=warnings,
    )
