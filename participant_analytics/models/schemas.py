"""
Pydantic request/response models for the Participant Analytics backend.

This module provides type-safe validation and serialization for the analytics
contracts: the immutable filter and cohort arguments, the canonical shapes
produced at the ingestion boundary (interventions, monthly performance
records), and the ready-to-render AnalyticsBundle with its series, drill-downs
and peer overlays.

Field names are camelCase to match the JSON consumed by the rendering layer.
All models use Pydantic v2 syntax.
"""

from datetime import date as DateType
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from participant_analytics.models.enums import (
    ComparisonDimension,
    InterventionSource,
)


ALL = "all"


# =============================================================================
# Request Arguments
# =============================================================================


class FilterCriteria(BaseModel):
    """
    Scoping applied uniformly to the subject's and the peers' records.

    Immutable: every analytics computation receives its own instance instead of
    reading shared UI state.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "program": "P1",
                "consultant": "all",
                "dateRange": ["2024-01-01", "2024-12-31"]
            }
        }
    )

    program: str = Field(
        default=ALL,
        description="Program id, or 'all' for no program restriction"
    )
    consultant: str = Field(
        default=ALL,
        description="Consultant email/name fragment, or 'all'"
    )
    dateRange: Optional[Tuple[DateType, DateType]] = Field(
        default=None,
        description="Inclusive [start, end] calendar-day range, or null for all time"
    )

    @model_validator(mode='after')
    def _check_range(self) -> 'FilterCriteria':
        if self.dateRange is not None and self.dateRange[0] > self.dateRange[1]:
            raise ValueError("dateRange start must not be after end")
        return self

    @property
    def program_id(self) -> Optional[str]:
        """The active program id, or None when the filter is 'all'/blank."""
        value = (self.program or '').strip()
        return None if not value or value.lower() == ALL else value

    @property
    def consultant_query(self) -> Optional[str]:
        """Lower-cased consultant fragment, or None when the filter is 'all'/blank."""
        value = (self.consultant or '').strip().lower()
        return None if not value or value == ALL else value


class CohortDefinition(BaseModel):
    """Whether to compute peer overlays and along which dimension."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Compute peer averages")
    dimension: ComparisonDimension = Field(
        default=ComparisonDimension.GENDER,
        description="Comparison dimension: gender, sector or program"
    )


# =============================================================================
# Canonical Ingestion Shapes
# =============================================================================


class CanonicalIntervention(BaseModel):
    """
    One intervention after alias normalization and merging.

    Source variants carry aliased field names (title/interventionTitle,
    area/areaOfSupport); after normalization only these canonical names exist.
    """
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Merge key (interventionId, id, title or structural hash)")
    title: str = Field(default='Untitled')
    area: str = Field(default='Unspecified')
    status: str = Field(default='Unknown', description="Bucketed status")
    rawStatus: Optional[str] = Field(default=None)
    consultantRef: Optional[str] = Field(default=None, description="Consultant email, else name")
    consultantEmail: Optional[str] = Field(default=None)
    consultantName: Optional[str] = Field(default=None)
    completedAt: Optional[DateType] = Field(default=None)
    interventionDate: Optional[DateType] = Field(default=None)
    date: Optional[DateType] = Field(default=None)
    programId: Optional[str] = Field(default=None)
    companyCode: Optional[str] = Field(default=None)
    interventionId: Optional[str] = Field(default=None)
    id: Optional[str] = Field(default=None)
    source: Optional[InterventionSource] = Field(default=None)

    @property
    def best_date(self) -> Optional[DateType]:
        """completedAt, else interventionDate, else date (first non-null wins)."""
        return self.completedAt or self.interventionDate or self.date


class MonthlyPerformanceRecord(BaseModel):
    """One row of the monthly performance sub-collection after normalization."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(default=None)
    createdAt: Optional[DateType] = Field(default=None)
    submittedAt: Optional[DateType] = Field(default=None)
    month: Optional[str] = Field(default=None, description="Raw month label")
    monthDate: Optional[DateType] = Field(default=None, description="Month label resolved to a date")
    revenue: float = Field(default=0.0)
    headPermanent: float = Field(default=0.0)
    headTemporary: float = Field(default=0.0)

    @property
    def record_date(self) -> Optional[DateType]:
        """submittedAt, else createdAt, else the date derived from the month label."""
        return self.submittedAt or self.createdAt or self.monthDate


# =============================================================================
# Series and Distributions
# =============================================================================


class Series(BaseModel):
    """
    Ordered category axis with one value per category.

    Categories are sorted ascending "YYYY-MM" or "YYYY" keys (or category names
    for distributions). When present, drilldown[i] names the DrillSeries that
    expands categories[i].
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "categories": ["2024-01", "2024-02"],
                "data": [100.0, 250.0],
                "drilldown": None
            }
        }
    )

    categories: List[str] = Field(default_factory=list)
    data: List[float] = Field(default_factory=list)
    drilldown: Optional[List[Optional[str]]] = Field(default=None)

    @model_validator(mode='after')
    def _check_lengths(self) -> 'Series':
        if len(self.categories) != len(self.data):
            raise ValueError(
                f"Series has {len(self.categories)} categories but {len(self.data)} values"
            )
        if self.drilldown is not None and len(self.drilldown) != len(self.categories):
            raise ValueError("drilldown pointers must align with categories")
        return self

    def value_map(self) -> dict:
        return dict(zip(self.categories, self.data))


class DrillSeries(BaseModel):
    """Child series addressed by its parent category's drilldown pointer."""
    id: str = Field(..., description="Equals the parent's drilldown pointer")
    name: str = Field(...)
    categories: List[str] = Field(default_factory=list)
    data: List[float] = Field(default_factory=list)

    @model_validator(mode='after')
    def _check_lengths(self) -> 'DrillSeries':
        if len(self.categories) != len(self.data):
            raise ValueError("DrillSeries categories and data must have equal length")
        return self


class CategoryCount(BaseModel):
    """One slice of a categorical distribution (donut/pie)."""
    name: str = Field(...)
    y: float = Field(...)
    drilldown: Optional[str] = Field(default=None)


# =============================================================================
# Analytics Bundle
# =============================================================================


class ParticipantKPIs(BaseModel):
    requiredInterventions: int = Field(default=0)
    completedInterventions: int = Field(default=0)
    participationRate: int = Field(default=0, ge=0, le=100)
    currentHeadcount: float = Field(default=0.0)


class PeerOverlay(BaseModel):
    """
    Peer cohort averages shaped identically to the subject's series so the
    rendering layer can overlay them without shape-specific logic.
    """
    dimension: ComparisonDimension = Field(...)
    cohortValue: Optional[str] = Field(default=None, description="Shared gender/sector/program value")
    peerIds: List[str] = Field(default_factory=list)
    contributingPeers: int = Field(default=0, description="Peers whose data was read successfully")
    revenueMonthly: Series = Field(default_factory=Series)
    headcountMonthly: Series = Field(default_factory=Series)
    interventionsByArea: List[CategoryCount] = Field(default_factory=list)
    complianceByStatus: List[CategoryCount] = Field(default_factory=list)


class AnalyticsBundle(BaseModel):
    """Everything the participant performance screen renders."""
    participantId: str = Field(...)
    displayName: str = Field(...)
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    kpis: ParticipantKPIs = Field(default_factory=ParticipantKPIs)

    revenueMonthly: Series = Field(default_factory=Series)
    revenueAnnual: Series = Field(default_factory=Series)
    revenueDrilldown: List[DrillSeries] = Field(default_factory=list)

    headcountMonthly: Series = Field(default_factory=Series)
    headcountDrilldown: List[DrillSeries] = Field(default_factory=list)

    interventionsByArea: List[CategoryCount] = Field(default_factory=list)
    interventionsByAreaDrilldown: List[DrillSeries] = Field(default_factory=list)
    interventionsByStatus: List[CategoryCount] = Field(default_factory=list)
    interventionsByStatusDrilldown: List[DrillSeries] = Field(default_factory=list)

    complianceByStatus: List[CategoryCount] = Field(default_factory=list)
    interventions: List[CanonicalIntervention] = Field(default_factory=list)

    peers: Optional[PeerOverlay] = Field(default=None)
    warnings: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Found but nothing to chart (distinct from not found)."""
        return not (
            self.revenueMonthly.categories
            or self.headcountMonthly.categories
            or self.interventions
            or self.complianceByStatus
        )


class CohortResponse(BaseModel):
    """Resolved peer cohort for one participant."""
    participantId: str = Field(...)
    dimension: ComparisonDimension = Field(...)
    cohortValue: Optional[str] = Field(default=None)
    peerIds: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
