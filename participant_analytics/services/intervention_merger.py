"""
Intervention merging service.

Interventions for one participant arrive from four independently shaped
sources, in increasing order of authority:

    1. application.interventions.required
    2. application.interventions.completed
    3. assignedInterventions collection
    4. interventionsDatabase collection

Each raw record is normalized once, at this ingestion boundary, into a
CanonicalIntervention (aliases resolved, dates normalized, status bucketed).
Nothing downstream knows about title/interventionTitle or area/areaOfSupport.

Merge semantics:
- merge key = interventionId ?? id ?? title ?? structural hash of the record
- records are inserted into an ordered map in precedence order; a later
  source replaces the earlier value at the same key, but the key keeps the
  position of its first appearance (which is the default sort order)
- a record without id, interventionId and title is keyed by a SHA-1 of its
  fields, so two field-identical titleless records collapse into one. This is
  a known limitation and is intentionally left as is.
- already-canonical records keep their key, so merging a merge result with
  itself yields the same collection
"""

import hashlib
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from participant_analytics.models.enums import InterventionSource, StatusBucket
from participant_analytics.models.schemas import CanonicalIntervention
from participant_analytics.services.date_normalizer import normalize_date


logger = logging.getLogger(__name__)

RawIntervention = Union[Mapping[str, Any], CanonicalIntervention, str]


# =============================================================================
# Constants
# =============================================================================

MERGE_ORDER: Sequence[InterventionSource] = (
    InterventionSource.REQUIRED,
    InterventionSource.COMPLETED,
    InterventionSource.ASSIGNED,
    InterventionSource.DATABASE,
)

TITLE_ALIASES = ('title', 'interventionTitle')
AREA_ALIASES = ('area', 'areaOfSupport')
INTERVENTION_ID_ALIASES = ('interventionId', 'interventionID', 'interventionid')
INTERVENTION_DATE_ALIASES = ('interventionDate', 'implementationDate')

DEFAULT_TITLE = 'Untitled'
DEFAULT_AREA = 'Unspecified'

# Maximum bad records echoed to the log per batch
BAD_RECORD_LOG_SAMPLE = 50


# =============================================================================
# Status helpers
# =============================================================================

def _norm(value: Any) -> str:
    return str(value if value is not None else '').strip().lower()


def title_case(text: str) -> str:
    return ' '.join(w[:1].upper() + w[1:].lower() for w in text.split(' ') if w)


def normalize_status(value: Any) -> str:
    """Title-case a raw status, turning '_' and '-' runs into spaces."""
    raw = str(value if value is not None else '').strip()
    if not raw:
        return StatusBucket.UNKNOWN.value
    for separator in ('_', '-'):
        raw = raw.replace(separator, ' ')
    return title_case(raw) or StatusBucket.UNKNOWN.value


def status_bucket(value: Any) -> str:
    """
    Map an inconsistent free-text status onto a stable bucket.

    Example:
        >>> status_bucket('COMPLETED_BY_CONSULTANT')
        'Completed'
        >>> status_bucket('awaiting_review')
        'Awaiting Review'
    """
    v = _norm(value)
    if not v:
        return StatusBucket.UNKNOWN.value
    if 'complete' in v or 'done' in v:
        return StatusBucket.COMPLETED.value
    if 'progress' in v or 'active' in v:
        return StatusBucket.IN_PROGRESS.value
    if 'pending' in v:
        return StatusBucket.PENDING.value
    if 'overdue' in v:
        return StatusBucket.OVERDUE.value
    if 'cancel' in v:
        return StatusBucket.CANCELLED.value
    if 'reject' in v:
        return StatusBucket.REJECTED.value
    if 'approved' in v:
        return StatusBucket.APPROVED.value
    if 'assigned' in v:
        return StatusBucket.ASSIGNED.value
    return normalize_status(value)


def _is_accepted(value: str) -> bool:
    return value in ('accepted', 'approve', 'approved')


def _is_pending(value: str) -> bool:
    return value in ('pending', 'awaiting', 'assigned', '')


def _is_completed(value: str) -> bool:
    return value in ('completed', 'complete', 'done')


def derive_assignment_status(raw: Mapping[str, Any]) -> str:
    """
    Display status of an assigned intervention from its acceptance and
    completion gates.

    Acceptance is checked first (consultant, then participant), then
    completion/confirmation; the raw status is the fallback.
    """
    consultant_status = _norm(raw.get('consultantStatus'))
    user_status = _norm(raw.get('userStatus'))
    consultant_completion = _norm(raw.get('consultantCompletionStatus'))
    user_completion = _norm(raw.get('userCompletionStatus'))

    if _is_pending(consultant_status):
        return 'Awaiting Consultant Acceptance'
    if _is_accepted(consultant_status) and _is_pending(user_status):
        return 'Awaiting SME Acceptance'
    if _is_completed(consultant_completion) and not _is_completed(user_completion):
        return 'Awaiting SME Confirmation'
    if _is_completed(consultant_completion) and _is_completed(user_completion):
        return StatusBucket.COMPLETED.value
    if _is_accepted(consultant_status) and _is_accepted(user_status):
        return 'Pending Execution'

    raw_status = str(raw.get('status') or '').strip()
    return raw_status or StatusBucket.UNKNOWN.value


def _has_assignment_gates(raw: Mapping[str, Any]) -> bool:
    return any(
        k in raw for k in ('consultantStatus', 'userStatus', 'consultantCompletionStatus', 'userCompletionStatus')
    )


# =============================================================================
# Normalization
# =============================================================================

def _first_text(raw: Mapping[str, Any], aliases: Iterable[str]) -> Optional[str]:
    for alias in aliases:
        value = raw.get(alias)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _first_date(raw: Mapping[str, Any], aliases: Iterable[str]):
    for alias in aliases:
        d = normalize_date(raw.get(alias))
        if d is not None:
            return d
    return None


def structural_hash(raw: Mapping[str, Any]) -> str:
    """SHA-1 over the record's fields; identical records share a hash."""
    payload = json.dumps(dict(raw), sort_keys=True, default=str)
    return 'sha1:' + hashlib.sha1(payload.encode('utf-8')).hexdigest()


def merge_key(raw: Mapping[str, Any]) -> str:
    """interventionId ?? id ?? title ?? structural hash."""
    return (
        _first_text(raw, INTERVENTION_ID_ALIASES)
        or _first_text(raw, ('id',))
        or _first_text(raw, TITLE_ALIASES)
        or structural_hash(raw)
    )


def _default_status(source: Optional[InterventionSource]) -> str:
    if source == InterventionSource.COMPLETED:
        return StatusBucket.COMPLETED.value
    if source == InterventionSource.REQUIRED:
        return StatusBucket.PENDING.value
    return StatusBucket.UNKNOWN.value


def normalize_intervention(
    raw: RawIntervention,
    source: Optional[InterventionSource] = None,
    default_program_id: Optional[str] = None,
    default_company_code: Optional[str] = None
) -> CanonicalIntervention:
    """
    Resolve aliases, dates and status of one raw intervention record.

    Args:
        raw: Source record (a mapping, a bare title string, or an already
            canonical intervention which is returned unchanged).
        source: Which of the four sources the record came from.
        default_program_id: Program id used when the record has none
            (the participant's application program).
        default_company_code: Org code used when the record has none.

    Returns:
        CanonicalIntervention with title and area populated whenever any alias
        carried a value.
    """
    if isinstance(raw, CanonicalIntervention):
        return raw
    if isinstance(raw, str):
        raw = {'title': raw}

    if source == InterventionSource.ASSIGNED or _has_assignment_gates(raw):
        raw_status = derive_assignment_status(raw)
    else:
        raw_status = str(raw.get('status') or '').strip() or _default_status(source)

    consultant_email = _first_text(raw, ('consultantEmail',))
    consultant_name = _first_text(raw, ('consultantName',))

    return CanonicalIntervention(
        key=merge_key(raw),
        title=_first_text(raw, TITLE_ALIASES) or DEFAULT_TITLE,
        area=_first_text(raw, AREA_ALIASES) or DEFAULT_AREA,
        status=status_bucket(raw_status),
        rawStatus=raw_status,
        consultantRef=consultant_email or consultant_name or _first_text(raw, ('consultantId',)),
        consultantEmail=consultant_email,
        consultantName=consultant_name,
        completedAt=normalize_date(raw.get('completedAt')),
        interventionDate=_first_date(raw, INTERVENTION_DATE_ALIASES),
        date=normalize_date(raw.get('date')),
        programId=_first_text(raw, ('programId',)) or default_program_id,
        companyCode=_first_text(raw, ('companyCode',)) or default_company_code,
        interventionId=_first_text(raw, INTERVENTION_ID_ALIASES),
        id=_first_text(raw, ('id',)),
        source=source,
    )


# =============================================================================
# Merge
# =============================================================================

def log_bad_records(records: Sequence[CanonicalIntervention], participant_id: str) -> int:
    """
    Warn about interventions missing a title, an intervention id or a status.

    Returns:
        Number of bad records found.
    """
    bad = [
        r for r in records
        if r.title == DEFAULT_TITLE or not r.interventionId or r.status == StatusBucket.UNKNOWN.value
    ]
    if bad:
        logger.warning(
            f"{len(bad)} incomplete intervention records for participant {participant_id}: "
            + ', '.join(
                f"{r.id or r.key} (title={r.title!r}, interventionId={r.interventionId!r}, status={r.status!r})"
                for r in bad[:BAD_RECORD_LOG_SAMPLE]
            )
        )
    return len(bad)


def merge_interventions(
    sources: Sequence[Iterable[RawIntervention]],
    source_order: Sequence[InterventionSource] = MERGE_ORDER,
    default_program_id: Optional[str] = None,
    default_company_code: Optional[str] = None
) -> List[CanonicalIntervention]:
    """
    Normalize and deduplicate interventions from several sources.

    Args:
        sources: One iterable of raw records per source, lowest authority first.
        source_order: Source tag for each position in `sources`.
        default_program_id: Program id for records that carry none.
        default_company_code: Org code for records that carry none.

    Returns:
        Canonical interventions, unique by key, in first-appearance order.

    Example:
        >>> merged = merge_interventions([
        ...     [{'title': 'Branding'}],
        ...     [],
        ...     [{'interventionTitle': 'Branding', 'status': 'done'}],
        ...     [],
        ... ])
        >>> [(m.title, m.status) for m in merged]
        [('Branding', 'Completed')]
    """
    merged: Dict[str, CanonicalIntervention] = {}

    for position, records in enumerate(sources):
        source = source_order[position] if position < len(source_order) else None
        for raw in records or ():
            canonical = normalize_intervention(
                raw,
                source=source,
                default_program_id=default_program_id,
                default_company_code=default_company_code,
            )
            # dict assignment keeps the key's original insertion position
            merged[canonical.key] = canonical

    return list(merged.values())


def count_completed(interventions: Iterable[CanonicalIntervention]) -> int:
    return sum(1 for i in interventions if i.status == StatusBucket.COMPLETED.value)
