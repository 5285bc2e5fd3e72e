"""
Analytics facade: the single entry point of the engine.

compute_analytics() orchestrates one request:

    1. load the subject (participant, application, four intervention sources,
       monthly history), concurrently
    2. merge, filter and aggregate it into series, drill-downs and KPIs
    3. when the cohort is enabled: resolve peers, average them under the same
       filters and align the averages onto the subject's categories
    4. return the AnalyticsBundle

Pure read + compute; calling it twice with the same arguments over the same
records yields the same bundle. Only a missing subject
(ParticipantNotFoundError) and a superseded request (AnalyticsCancelledError)
escape; every peer-side failure degrades to an empty overlay plus a warning.
"""

import logging
import time
from datetime import date
from typing import List, Optional, Tuple

from participant_analytics.core.errors import AnalyticsCancelledError
from participant_analytics.core.record_store import MAX_IN_PREDICATE_VALUES, RecordStore
from participant_analytics.models.enums import ComparisonDimension
from participant_analytics.models.schemas import (
    AnalyticsBundle,
    CohortDefinition,
    CohortResponse,
    FilterCriteria,
    PeerOverlay,
)
from participant_analytics.services.cancellation import CancellationToken, checkpoint
from participant_analytics.services.cohort_resolver import (
    DEFAULT_CANDIDATE_LIMIT,
    DEFAULT_MAX_COHORT_SIZE,
    resolve_peers,
)
from participant_analytics.services.participant_loader import (
    ParticipantMetrics,
    ParticipantSnapshot,
    build_participant_metrics,
    load_subject,
)
from participant_analytics.services.peer_averager import PeerAverages, average_peers
from participant_analytics.services.series_aggregator import align_distribution, align_series


logger = logging.getLogger(__name__)

PEER_FAILURE_WARNING = "Peer comparison failed; showing participant data only."


# =============================================================================
# Peer overlay
# =============================================================================

def build_peer_overlay(
    dimension: ComparisonDimension,
    cohort_value: Optional[str],
    peer_ids: List[str],
    averages: PeerAverages,
    subject: ParticipantMetrics
) -> PeerOverlay:
    """Peer averages re-expressed on the subject's category axes."""
    return PeerOverlay(
        dimension=dimension,
        cohortValue=cohort_value,
        peerIds=list(peer_ids),
        contributingPeers=averages.contributing_peers,
        revenueMonthly=align_series(averages.revenue, subject.revenue_monthly.categories),
        headcountMonthly=align_series(averages.headcount, subject.headcount_monthly.categories),
        interventionsByArea=align_distribution(
            averages.interventions_by_area, [c.name for c in subject.by_area]
        ),
        complianceByStatus=align_distribution(
            averages.compliance_by_status, [c.name for c in subject.compliance]
        ),
    )


async def _compute_peers(
    store: RecordStore,
    subject: ParticipantSnapshot,
    metrics: ParticipantMetrics,
    filters: FilterCriteria,
    dimension: ComparisonDimension,
    company_code: Optional[str],
    reference: Optional[date],
    token: Optional[CancellationToken],
    max_cohort_size: int,
    chunk_size: int,
    candidate_limit: int
) -> Tuple[PeerOverlay, List[str]]:
    resolution = await resolve_peers(
        store,
        subject,
        dimension,
        filters,
        company_code=company_code,
        max_size=max_cohort_size,
        chunk_size=chunk_size,
        candidate_limit=candidate_limit,
    )
    checkpoint(token)

    averages = await average_peers(
        store,
        resolution.peer_ids,
        filters,
        company_code=company_code,
        reference=reference,
        chunk_size=chunk_size,
        token=token,
    )
    overlay = build_peer_overlay(dimension, resolution.cohort_value, resolution.peer_ids, averages, metrics)
    return overlay, resolution.warnings


# =============================================================================
# Entry points
# =============================================================================

async def compute_analytics(
    store: RecordStore,
    participant_id: str,
    filters: Optional[FilterCriteria] = None,
    cohort: Optional[CohortDefinition] = None,
    company_code: Optional[str] = None,
    token: Optional[CancellationToken] = None,
    reference: Optional[date] = None,
    max_cohort_size: int = DEFAULT_MAX_COHORT_SIZE,
    chunk_size: int = MAX_IN_PREDICATE_VALUES,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    baseline_months: int = 3
) -> AnalyticsBundle:
    """
    Compute the ready-to-render analytics bundle for one participant.

    Args:
        store: Record store.
        participant_id: Participant document id (or participantId field).
        filters: Immutable scoping (default: everything).
        cohort: Peer comparison settings (default: disabled).
        company_code: Caller's organization code.
        token: Cooperative cancellation token.
        reference: Reference date for yearless month labels (default: today).
        max_cohort_size: Peer cap.
        chunk_size: Maximum ids per membership query.
        candidate_limit: Rows read per cohort candidate query.
        baseline_months: Months before application submission checked for
            baseline history.

    Returns:
        AnalyticsBundle. A participant that exists but has no data gets empty
        series, not an error.

    Raises:
        ParticipantNotFoundError: If the participant does not exist (or is
            outside the caller's organization).
        AnalyticsCancelledError: If the token was cancelled mid-computation.
        RecordStoreError: If a subject read fails.

    Example:
        bundle = await compute_analytics(
            store,
            'p-001',
            FilterCriteria(program='P1'),
            CohortDefinition(enabled=True, dimension=ComparisonDimension.SECTOR),
        )
    """
    filters = filters or FilterCriteria()
    cohort = cohort or CohortDefinition()
    started = time.monotonic()

    logger.info(
        f"Computing analytics for participant {participant_id} "
        f"(program={filters.program}, consultant={filters.consultant}, "
        f"range={filters.dateRange}, compare={cohort.dimension.value if cohort.enabled else 'off'})"
    )

    checkpoint(token)
    subject = await load_subject(store, participant_id, company_code)
    checkpoint(token)

    metrics = build_participant_metrics(
        subject,
        filters,
        company_code=company_code,
        reference=reference,
        baseline_months=baseline_months,
        log_bad=True,
    )

    bundle = AnalyticsBundle(
        participantId=subject.participant_id,
        displayName=subject.display_name,
        filters=filters,
        kpis=metrics.kpis,
        revenueMonthly=metrics.revenue_monthly,
        revenueAnnual=metrics.revenue_annual,
        revenueDrilldown=metrics.revenue_drilldown,
        headcountMonthly=metrics.headcount_monthly,
        headcountDrilldown=metrics.headcount_drilldown,
        interventionsByArea=metrics.by_area,
        interventionsByAreaDrilldown=metrics.by_area_drilldown,
        interventionsByStatus=metrics.by_status,
        interventionsByStatusDrilldown=metrics.by_status_drilldown,
        complianceByStatus=metrics.compliance,
        interventions=metrics.filtered_interventions,
        warnings=list(metrics.warnings),
    )

    if cohort.enabled:
        try:
            overlay, warnings = await _compute_peers(
                store, subject, metrics, filters, cohort.dimension, company_code,
                reference, token, max_cohort_size, chunk_size, candidate_limit,
            )
            bundle.peers = overlay
            bundle.warnings.extend(warnings)
        except AnalyticsCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Peer comparison failed for participant {participant_id}: {e}")
            bundle.peers = PeerOverlay(dimension=cohort.dimension)
            bundle.warnings.append(PEER_FAILURE_WARNING)

    checkpoint(token)

    elapsed = time.monotonic() - started
    logger.info(
        f"Analytics for participant {participant_id} computed in {elapsed:.2f}s "
        f"({len(bundle.interventions)} interventions, {len(bundle.revenueMonthly.categories)} revenue months, "
        f"peers={bundle.peers.contributingPeers if bundle.peers else 0})"
    )
    return bundle


async def resolve_cohort(
    store: RecordStore,
    participant_id: str,
    dimension: ComparisonDimension,
    filters: Optional[FilterCriteria] = None,
    company_code: Optional[str] = None,
    max_cohort_size: int = DEFAULT_MAX_COHORT_SIZE,
    chunk_size: int = MAX_IN_PREDICATE_VALUES,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT
) -> CohortResponse:
    """
    Peer ids for one participant without computing any averages.

    Raises:
        ParticipantNotFoundError: If the participant does not exist.
    """
    filters = filters or FilterCriteria()
    subject = await load_subject(store, participant_id, company_code)
    resolution = await resolve_peers(
        store,
        subject,
        dimension,
        filters,
        company_code=company_code,
        max_size=max_cohort_size,
        chunk_size=chunk_size,
        candidate_limit=candidate_limit,
    )
    return CohortResponse(
        participantId=subject.participant_id,
        dimension=dimension,
        cohortValue=resolution.cohort_value,
        peerIds=resolution.peer_ids,
        warnings=resolution.warnings,
    )
