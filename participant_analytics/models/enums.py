"""
Enumeration definitions for the Participant Analytics backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization and
deserialization in API responses and query parameters.
"""

from enum import Enum


class ComparisonDimension(str, Enum):
    """
    Dimension along which a participant's peer cohort is formed.

    - gender: Participants sharing the subject's gender, same organization
    - sector: Participants sharing the subject's sector, same organization
    - program: Participants whose application lists the effective program
    """
    GENDER = "gender"
    SECTOR = "sector"
    PROGRAM = "program"


class InterventionSource(str, Enum):
    """
    The four independently shaped intervention sources.

    Declaration order is merge precedence: later sources carry more authority
    and replace earlier ones at the same merge key.

    - required: application.interventions.required
    - completed: application.interventions.completed
    - assigned: assignedInterventions collection
    - database: interventionsDatabase collection
    """
    REQUIRED = "required"
    COMPLETED = "completed"
    ASSIGNED = "assigned"
    DATABASE = "database"


class ComplianceStatus(str, Enum):
    """
    Compliance document status buckets.

    Any raw status other than valid / missing / expired falls into OTHER.
    """
    VALID = "valid"
    MISSING = "missing"
    EXPIRED = "expired"
    OTHER = "other"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_raw(cls, value) -> 'ComplianceStatus':
        """Bucket a raw document status; unrecognized values map to OTHER."""
        text = str(value if value is not None else '').strip().lower()
        for status in (cls.VALID, cls.MISSING, cls.EXPIRED):
            if text == status.value:
                return status
        return cls.OTHER


class StatusBucket(str, Enum):
    """
    Stable buckets for inconsistent free-text intervention statuses.

    Statuses that match none of these keep their title-cased raw value.
    """
    COMPLETED = "Completed"
    IN_PROGRESS = "In Progress"
    PENDING = "Pending"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    APPROVED = "Approved"
    ASSIGNED = "Assigned"
    UNKNOWN = "Unknown"


class DatePreset(str, Enum):
    """
    Date range shortcuts offered by the analytics screens.

    - THIS_MONTH / THIS_QUARTER / THIS_YEAR: calendar period containing today
    - ALL_TIME: no date restriction
    - CUSTOM: explicit start/end supplied by the caller
    """
    THIS_MONTH = "THIS_MONTH"
    THIS_QUARTER = "THIS_QUARTER"
    THIS_YEAR = "THIS_YEAR"
    ALL_TIME = "ALL_TIME"
    CUSTOM = "CUSTOM"
