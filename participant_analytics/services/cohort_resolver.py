"""
Peer cohort resolution.

Given the subject participant and a comparison dimension, produces a bounded,
stably ordered set of peer participant ids:

- gender / sector: other participants sharing the subject's value for that
  field, in the same organization
- program: participants whose application lists the effective program (the
  filter's program when set, else the subject's own)

When a program filter is active and the dimension is not program, candidates
are further intersected with that program's enrollment, looked up through
batched membership queries of at most `chunk_size` ids.

The subject is always excluded and the result is capped at `max_size`.
Resolution never raises: lookup failures and missing linkage produce an empty
cohort plus a warning for the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, TypeVar

from participant_analytics.core.record_store import (
    APPLICATIONS,
    MAX_IN_PREDICATE_VALUES,
    PARTICIPANTS,
    RecordStore,
    where,
)
from participant_analytics.models.enums import ComparisonDimension
from participant_analytics.models.schemas import FilterCriteria
from participant_analytics.services.participant_loader import ParticipantSnapshot


logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_COHORT_SIZE = 25
DEFAULT_CANDIDATE_LIMIT = 100


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class CohortResolution:
    """
    Resolved peer cohort.

    Attributes:
        dimension: Comparison dimension used.
        cohort_value: The shared gender/sector/program value, when known.
        peer_ids: Sorted peer participant ids, subject excluded, capped.
        warnings: Soft, user-visible warnings (empty cohort reasons).
    """
    dimension: ComparisonDimension
    cohort_value: Optional[str] = None
    peer_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================

def chunk(ids: Sequence[T], size: int = MAX_IN_PREDICATE_VALUES) -> List[List[T]]:
    """
    Split ids into consecutive chunks of at most `size`.

    Example:
        >>> chunk(['a', 'b', 'c'], 2)
        [['a', 'b'], ['c']]
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


def _subject_ids(subject: ParticipantSnapshot) -> Set[str]:
    ids = {subject.participant_id}
    for key in ('id', 'participantId'):
        value = subject.participant.get(key)
        if value:
            ids.add(str(value))
    return ids


def _participant_ref(doc: Dict[str, Any]) -> Optional[str]:
    value = doc.get('id')
    return str(value) if value else None


def _application_ref(doc: Dict[str, Any]) -> Optional[str]:
    value = doc.get('participantId')
    return str(value) if value else None


def _org_predicates(org_code: Optional[str]) -> list:
    return [where('companyCode', '==', org_code)] if org_code else []


# =============================================================================
# Candidate queries
# =============================================================================

async def _candidates_by_field(
    store: RecordStore,
    field_name: str,
    value: str,
    org_code: Optional[str],
    limit: int
) -> List[str]:
    docs = await store.query(
        PARTICIPANTS,
        [where(field_name, '==', value)] + _org_predicates(org_code),
        limit=limit,
    )
    return [ref for ref in (_participant_ref(d) for d in docs) if ref]


async def _candidates_by_program(
    store: RecordStore,
    program_id: str,
    org_code: Optional[str],
    limit: int
) -> List[str]:
    docs = await store.query(
        APPLICATIONS,
        [where('programId', '==', program_id)] + _org_predicates(org_code),
        limit=limit,
    )
    return [ref for ref in (_application_ref(d) for d in docs) if ref]


async def enrolled_in_program(
    store: RecordStore,
    participant_ids: Sequence[str],
    program_id: str,
    chunk_size: int = MAX_IN_PREDICATE_VALUES
) -> Set[str]:
    """
    Subset of participant_ids with an application in program_id.

    One membership query per chunk; chunks run concurrently and are unioned.
    """
    batches = chunk(list(participant_ids), chunk_size)
    results = await asyncio.gather(*[
        store.query(
            APPLICATIONS,
            [where('participantId', 'in', batch), where('programId', '==', program_id)],
        )
        for batch in batches
    ])
    enrolled: Set[str] = set()
    for docs in results:
        enrolled.update(ref for ref in (_application_ref(d) for d in docs) if ref)
    return enrolled


# =============================================================================
# Resolution
# =============================================================================

async def resolve_peers(
    store: RecordStore,
    subject: ParticipantSnapshot,
    dimension: ComparisonDimension,
    filters: FilterCriteria,
    company_code: Optional[str] = None,
    max_size: int = DEFAULT_MAX_COHORT_SIZE,
    chunk_size: int = MAX_IN_PREDICATE_VALUES,
    candidate_limit: int = DEFAULT_CANDIDATE_LIMIT
) -> CohortResolution:
    """
    Resolve the peer ids for a subject along one comparison dimension.

    Args:
        store: Record store.
        subject: The subject participant's snapshot.
        dimension: gender, sector or program.
        filters: Active filters; the program filter selects the cohort program
            and narrows gender/sector cohorts.
        company_code: Caller's organization, used when the subject has none.
        max_size: Cohort cap.
        chunk_size: Maximum ids per membership query.
        candidate_limit: Rows read per candidate query.

    Returns:
        CohortResolution (possibly empty, with warnings). Never raises.

    Example:
        resolution = await resolve_peers(store, subject, ComparisonDimension.PROGRAM, filters)
        resolution.peer_ids  # ['p-02', 'p-07', ...]
    """
    resolution = CohortResolution(dimension=dimension)
    org_code = subject.company_code or company_code

    try:
        if dimension == ComparisonDimension.PROGRAM:
            program_id = filters.program_id or subject.program_id
            if not program_id:
                resolution.warnings.append(
                    "Peer comparison unavailable: no program could be determined for this participant."
                )
                return resolution
            resolution.cohort_value = program_id
            candidates = await _candidates_by_program(store, program_id, org_code, candidate_limit)
        else:
            value = subject.gender if dimension == ComparisonDimension.GENDER else subject.sector
            if not value:
                resolution.warnings.append(
                    f"Peer comparison unavailable: participant has no {dimension.value} on record."
                )
                return resolution
            resolution.cohort_value = value
            candidates = await _candidates_by_field(store, dimension.value, value, org_code, candidate_limit)

        excluded = _subject_ids(subject)
        peer_ids = sorted({c for c in candidates if c not in excluded})

        if dimension != ComparisonDimension.PROGRAM and filters.program_id and peer_ids:
            enrolled = await enrolled_in_program(store, peer_ids, filters.program_id, chunk_size)
            peer_ids = [p for p in peer_ids if p in enrolled]

        if len(peer_ids) > max_size:
            logger.info(
                f"Cohort for {subject.participant_id} capped at {max_size} of {len(peer_ids)} candidates"
            )
        resolution.peer_ids = peer_ids[:max_size]

    except Exception as e:
        logger.warning(f"Cohort resolution failed for participant {subject.participant_id}: {e}")
        resolution.peer_ids = []
        resolution.warnings.append("Peer comparison unavailable: peers could not be loaded.")
        return resolution

    if not resolution.peer_ids:
        resolution.warnings.append(
            f"No peers share this participant's {dimension.value} ({resolution.cohort_value})."
        )
    return resolution
