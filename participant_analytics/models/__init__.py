"""
Models package: enums and Pydantic schemas for the analytics contracts.

    from participant_analytics.models import FilterCriteria, CohortDefinition, Series
"""

from participant_analytics.models.enums import (
    ComparisonDimension,
    ComplianceStatus,
    DatePreset,
    InterventionSource,
    StatusBucket,
)
from participant_analytics.models.schemas import (
    ALL,
    AnalyticsBundle,
    CanonicalIntervention,
    CategoryCount,
    CohortDefinition,
    CohortResponse,
    DrillSeries,
    FilterCriteria,
    MonthlyPerformanceRecord,
    ParticipantKPIs,
    PeerOverlay,
    Series,
)

__all__ = [
    # Enums
    'ComparisonDimension',
    'ComplianceStatus',
    'DatePreset',
    'InterventionSource',
    'StatusBucket',
    # Schemas
    'ALL',
    'AnalyticsBundle',
    'CanonicalIntervention',
    'CategoryCount',
    'CohortDefinition',
    'CohortResponse',
    'DrillSeries',
    'FilterCriteria',
    'MonthlyPerformanceRecord',
    'ParticipantKPIs',
    'PeerOverlay',
    'Series',
]
