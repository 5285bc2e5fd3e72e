"""
Exception hierarchy for the analytics engine.

Only ParticipantNotFoundError and AnalyticsCancelledError ever escape
compute_analytics(); every other failure mode (unparseable dates, missing
cohort linkage, peer fetch errors) degrades to excluded data or a warning
on the returned bundle.
"""


class AnalyticsError(Exception):
    """Base class for all analytics engine errors."""


class ParticipantNotFoundError(AnalyticsError):
    """Neither a participant nor an application exists for the requested id."""

    def __init__(self, participant_id: str) -> None:
        self.participant_id = participant_id
        super().__init__(f"Participant '{participant_id}' not found")


class AnalyticsCancelledError(AnalyticsError):
    """The computation was superseded by a newer request and its result must be discarded."""

    def __init__(self, reason: str = 'superseded') -> None:
        self.reason = reason
        super().__init__(f"Analytics computation cancelled: {reason}")


class RecordStoreError(AnalyticsError):
    """A read against the record store failed."""


class PredicateError(RecordStoreError, ValueError):
    """A query predicate is malformed or exceeds the store's limits."""
