"""
Peer cohort averaging.

Reads the same records for every peer that are read for the subject, folds
each peer under the subject's FilterCriteria, and averages the results per
bucket (month, area, compliance status).

Read plan (bounded by the cohort cap):
- participant and application documents: batched membership queries, at most
  `chunk_size` ids per query, chunks issued concurrently
- per-peer interventions and monthly history: one snapshot load per peer,
  all peers concurrently

A peer whose reads or fold fail is skipped. Failures of the batched reads
propagate to the caller, which resets the whole peer overlay.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from participant_analytics.core.record_store import (
    APPLICATIONS,
    MAX_IN_PREDICATE_VALUES,
    PARTICIPANTS,
    RecordStore,
    where,
    where_id_in,
)
from participant_analytics.models.schemas import CategoryCount, FilterCriteria, Series
from participant_analytics.services.cancellation import CancellationToken, checkpoint
from participant_analytics.services.cohort_resolver import chunk
from participant_analytics.services.participant_loader import (
    ParticipantSnapshot,
    build_participant_metrics,
    load_participant_snapshot,
)
from participant_analytics.services.series_aggregator import (
    COMPLIANCE_ORDER,
    MeanAccumulator,
    distribution_map,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class PeerAverages:
    """
    Averaged peer metrics, shaped like the subject's.

    Attributes:
        revenue: Mean monthly revenue per month key.
        headcount: Mean monthly headcount per month key.
        interventions_by_area: Mean completed interventions per area.
        compliance_by_status: Mean document count per compliance status.
        contributing_peers: Peers folded successfully.
        skipped_peers: Peers skipped after a read or fold error.
    """
    revenue: Series = field(default_factory=Series)
    headcount: Series = field(default_factory=Series)
    interventions_by_area: List[CategoryCount] = field(default_factory=list)
    compliance_by_status: List[CategoryCount] = field(default_factory=list)
    contributing_peers: int = 0
    skipped_peers: List[str] = field(default_factory=list)


# =============================================================================
# Batched reads
# =============================================================================

async def fetch_peer_documents(
    store: RecordStore,
    peer_ids: Sequence[str],
    chunk_size: int = MAX_IN_PREDICATE_VALUES
) -> Dict[str, Dict[str, Any]]:
    """
    Participant and application documents for every peer.

    Participants are matched by document id first; ids no document carries
    are retried against the participantId field, as the subject lookup does.

    Returns:
        {peer_id: {'participant': doc or None, 'application': doc or None}}
    """
    batches = chunk(list(peer_ids), chunk_size)
    participant_batches, application_batches = await asyncio.gather(
        asyncio.gather(*[store.query(PARTICIPANTS, [where_id_in(b)]) for b in batches]),
        asyncio.gather(*[
            store.query(APPLICATIONS, [where('participantId', 'in', b)]) for b in batches
        ]),
    )

    documents: Dict[str, Dict[str, Any]] = {
        pid: {'participant': None, 'application': None} for pid in peer_ids
    }
    for docs in participant_batches:
        for doc in docs:
            pid = doc.get('id')
            if pid in documents:
                documents[pid]['participant'] = doc

    misses = [pid for pid in documents if documents[pid]['participant'] is None]
    if misses:
        field_batches = await asyncio.gather(*[
            store.query(PARTICIPANTS, [where('participantId', 'in', b)])
            for b in chunk(misses, chunk_size)
        ])
        for docs in field_batches:
            for doc in docs:
                pid = doc.get('participantId')
                if pid in documents and documents[pid]['participant'] is None:
                    documents[pid]['participant'] = doc

    for docs in application_batches:
        for doc in docs:
            pid = doc.get('participantId')
            # first application per participant wins, like the single-participant lookup
            if pid in documents and documents[pid]['application'] is None:
                documents[pid]['application'] = doc
    return documents


# =============================================================================
# Averaging
# =============================================================================

def _ranked_counts(means: Dict[str, float]) -> List[CategoryCount]:
    ranked = sorted(means.items(), key=lambda kv: (-kv[1], kv[0]))
    return [CategoryCount(name=name, y=value) for name, value in ranked]


def _ordered_compliance(means: Dict[str, float]) -> List[CategoryCount]:
    return [
        CategoryCount(name=status.label, y=means[status.label])
        for status in COMPLIANCE_ORDER
        if means.get(status.label)
    ]


async def average_peers(
    store: RecordStore,
    peer_ids: Sequence[str],
    filters: FilterCriteria,
    company_code: Optional[str] = None,
    reference: Optional[date] = None,
    chunk_size: int = MAX_IN_PREDICATE_VALUES,
    token: Optional[CancellationToken] = None
) -> PeerAverages:
    """
    Average the subject-shaped metrics over a peer cohort.

    Each bucket is divided by the number of peers that actually reported it,
    so a month reported by one peer shows that peer's value and a month no
    peer reported does not appear (it aligns to 0 on the subject's axis).

    Args:
        store: Record store.
        peer_ids: Resolved peer ids (already capped).
        filters: The subject's FilterCriteria, applied to every peer.
        company_code: Caller's organization code.
        reference: Reference date for yearless labels.
        chunk_size: Maximum ids per membership query.
        token: Cancellation token checked between read and fold stages.

    Returns:
        PeerAverages.

    Raises:
        RecordStoreError: If a batched read fails.
        AnalyticsCancelledError: If the token is cancelled.
    """
    result = PeerAverages()
    if not peer_ids:
        return result

    documents = await fetch_peer_documents(store, peer_ids, chunk_size)
    checkpoint(token)

    snapshots = await asyncio.gather(
        *[
            load_participant_snapshot(
                store,
                pid,
                participant=documents[pid]['participant'],
                application=documents[pid]['application'],
            )
            for pid in peer_ids
        ],
        return_exceptions=True,
    )
    checkpoint(token)

    revenue = MeanAccumulator()
    headcount = MeanAccumulator()
    areas = MeanAccumulator()
    compliance = MeanAccumulator()

    for pid, snapshot in zip(peer_ids, snapshots):
        if isinstance(snapshot, BaseException):
            logger.warning(f"Skipping peer {pid}: {snapshot}")
            result.skipped_peers.append(pid)
            continue
        if not isinstance(snapshot, ParticipantSnapshot) or not snapshot.found:
            logger.warning(f"Skipping peer {pid}: no participant or application found")
            result.skipped_peers.append(pid)
            continue
        try:
            metrics = build_participant_metrics(snapshot, filters, company_code, reference)
        except Exception as e:
            logger.warning(f"Skipping peer {pid}: {e}")
            result.skipped_peers.append(pid)
            continue

        revenue.add_map(metrics.revenue_monthly.value_map())
        headcount.add_map(metrics.headcount_monthly.value_map())
        areas.add_map(distribution_map(metrics.by_area))
        compliance.add_map(distribution_map(metrics.compliance))
        result.contributing_peers += 1

    result.revenue = revenue.to_series()
    result.headcount = headcount.to_series()
    result.interventions_by_area = _ranked_counts(areas.means())
    result.compliance_by_status = _ordered_compliance(compliance.means())

    logger.info(
        f"Averaged {result.contributing_peers} of {len(peer_ids)} peers "
        f"({len(result.skipped_peers)} skipped)"
    )
    return result
