"""
Participant Analytics Services Module

Business logic of the analytics engine. Every service is stateless; the only
per-request state is the immutable FilterCriteria / CohortDefinition passed
in and the CancellationToken of the computation.

Services (leaf first):
- date_normalizer: heterogeneous temporal values -> calendar dates
- time_bucketer: "YYYY-MM" / "YYYY" bucket keys
- intervention_merger: four intervention sources -> canonical collection
- filter_engine: company / program / consultant / date-range predicates
- series_aggregator: monthly and annual series, drill-downs, distributions
- participant_loader: per-participant reads and metric folding
- cohort_resolver: bounded peer id sets per comparison dimension
- peer_averager: per-bucket peer means
- cancellation: cooperative cancellation of superseded computations
- analytics_facade: compute_analytics(), the engine entry point

All services are designed to be consumed by the API layer
(participant_analytics/api/).
"""

# =============================================================================
# Normalization and Bucketing
# =============================================================================

from participant_analytics.services.date_normalizer import (
    normalize_date,
    parse_month_label,
)
from participant_analytics.services.time_bucketer import (
    month_key,
    month_label,
    month_start,
    sorted_keys,
    year_key,
    year_of,
)

# =============================================================================
# Interventions and Filters
# =============================================================================

from participant_analytics.services.intervention_merger import (
    MERGE_ORDER,
    derive_assignment_status,
    merge_interventions,
    normalize_intervention,
    status_bucket,
)
from participant_analytics.services.filter_engine import (
    filter_interventions,
    filter_monthly_records,
    resolve_preset,
)

# =============================================================================
# Series Aggregation
# =============================================================================

from participant_analytics.services.series_aggregator import (
    MeanAccumulator,
    aggregate_annual,
    aggregate_monthly,
    align_series,
    baseline_months,
    compliance_distribution,
    headcount_breakdown,
)

# =============================================================================
# Cohorts and Orchestration
# =============================================================================

from participant_analytics.services.cancellation import (
    CancellationRegistry,
    CancellationToken,
)
from participant_analytics.services.cohort_resolver import (
    CohortResolution,
    chunk,
    resolve_peers,
)
from participant_analytics.services.peer_averager import (
    PeerAverages,
    average_peers,
)
from participant_analytics.services.analytics_facade import (
    compute_analytics,
    resolve_cohort,
)

__all__ = [
    # Normalization and bucketing
    'normalize_date',
    'parse_month_label',
    'month_key',
    'month_label',
    'month_start',
    'sorted_keys',
    'year_key',
    'year_of',
    # Interventions and filters
    'MERGE_ORDER',
    'derive_assignment_status',
    'merge_interventions',
    'normalize_intervention',
    'status_bucket',
    'filter_interventions',
    'filter_monthly_records',
    'resolve_preset',
    # Series aggregation
    'MeanAccumulator',
    'aggregate_annual',
    'aggregate_monthly',
    'align_series',
    'baseline_months',
    'compliance_distribution',
    'headcount_breakdown',
    # Cohorts and orchestration
    'CancellationRegistry',
    'CancellationToken',
    'CohortResolution',
    'chunk',
    'resolve_peers',
    'PeerAverages',
    'average_peers',
    'compute_analytics',
    'resolve_cohort',
]
