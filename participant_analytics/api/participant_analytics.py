"""
FastAPI router module for Participant Analytics endpoints.

Serves the participant performance screen: KPIs, revenue/headcount series
with drill-downs, intervention and compliance distributions, and optional
peer-cohort overlays.

Key Endpoints:
- GET /participants/{participant_id}/analytics: Full analytics bundle
- GET /participants/{participant_id}/cohort: Resolved peer ids only

Request handling:
- Filters arrive as query parameters and are frozen into a FilterCriteria
  before the computation starts
- A newer request for the same (organization, participant) cancels the
  in-flight one through the CancellationRegistry
- The whole computation runs under the configured deadline

Error mapping:
- ParticipantNotFoundError -> 404
- AnalyticsCancelledError -> 409 (superseded by a newer request)
- deadline exceeded -> 504
- anything else -> 500
"""

import asyncio
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from participant_analytics.core.dependencies import RecordStoreDep, RegistryDep, SettingsDep
from participant_analytics.core.errors import AnalyticsCancelledError, ParticipantNotFoundError
from participant_analytics.models.enums import ComparisonDimension, DatePreset
from participant_analytics.models.schemas import (
    ALL,
    AnalyticsBundle,
    CohortDefinition,
    CohortResponse,
    FilterCriteria,
)
from participant_analytics.services.analytics_facade import compute_analytics, resolve_cohort
from participant_analytics.services.filter_engine import resolve_preset


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def build_filters(
    program: str,
    consultant: str,
    start: Optional[date],
    end: Optional[date],
    preset: DatePreset,
    today: Optional[date] = None
) -> FilterCriteria:
    """
    Freeze query parameters into a FilterCriteria.

    An explicit start/end pair wins over the preset.

    Raises:
        HTTPException 422: If only one bound is given or start is after end.
    """
    if (start is None) != (end is None):
        raise HTTPException(status_code=422, detail="Both start and end are required for a custom range")

    if start is not None:
        date_range = (start, end)
    else:
        date_range = resolve_preset(preset, today=today)

    try:
        return FilterCriteria(program=program, consultant=consultant, dateRange=date_range)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    '/participants/{participant_id}/analytics',
    response_model=AnalyticsBundle,
    summary="Get Participant Analytics",
    description="""
    Compute the analytics bundle for one participant.

    Interventions from all four sources are merged; revenue and headcount
    combine the monthly performance history with the participant's historical
    maps. With compare=true, peers sharing the chosen dimension are averaged
    under the same filters and aligned onto the participant's categories.
    """
)
async def get_participant_analytics(
    participant_id: str,
    store: RecordStoreDep,
    registry: RegistryDep,
    settings: SettingsDep,
    program: str = Query(default=ALL, description="Program id or 'all'"),
    consultant: str = Query(default=ALL, description="Consultant email/name fragment or 'all'"),
    start: Optional[date] = Query(default=None, description="Custom range start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Custom range end (inclusive)"),
    preset: DatePreset = Query(default=DatePreset.ALL_TIME, description="Date preset when no custom range"),
    compare: bool = Query(default=False, description="Compute peer overlays"),
    dimension: ComparisonDimension = Query(
        default=ComparisonDimension.GENDER,
        description="Comparison dimension: gender, sector or program"
    ),
    company_code: Optional[str] = Query(default=None, description="Caller's organization code"),
) -> AnalyticsBundle:
    """
    Get the analytics bundle for one participant.

    Args:
        participant_id: Participant document id.
        store: Record store from dependency injection.
        registry: In-flight computation registry.
        settings: Application settings.
        program, consultant, start, end, preset: Filters.
        compare, dimension: Peer comparison settings.
        company_code: Caller's organization code.

    Returns:
        AnalyticsBundle.

    Raises:
        HTTPException 404: If the participant does not exist.
        HTTPException 409: If a newer request superseded this one.
        HTTPException 504: If the computation exceeded the deadline.
        HTTPException 500: If the computation failed.
    """
    filters = build_filters(program, consultant, start, end, preset)
    cohort = CohortDefinition(enabled=compare, dimension=dimension)

    logger.info(f"Analytics requested for participant={participant_id}, company={company_code}")

    token = registry.supersede(company_code, participant_id)
    try:
        return await asyncio.wait_for(
            compute_analytics(
                store,
                participant_id,
                filters,
                cohort,
                company_code=company_code,
                token=token,
                max_cohort_size=settings.max_cohort_size,
                chunk_size=settings.in_query_chunk_size,
                candidate_limit=settings.cohort_candidate_limit,
                baseline_months=settings.baseline_months,
            ),
            timeout=settings.analytics_deadline_seconds,
        )
    except ParticipantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AnalyticsCancelledError as e:
        logger.info(f"Discarding superseded analytics for participant={participant_id}")
        raise HTTPException(status_code=409, detail=str(e))
    except asyncio.TimeoutError:
        logger.warning(
            f"Analytics for participant={participant_id} exceeded "
            f"{settings.analytics_deadline_seconds}s deadline"
        )
        raise HTTPException(status_code=504, detail="Analytics computation timed out")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error computing analytics for participant={participant_id}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to compute analytics: {str(e)}"
        )
    finally:
        registry.release(company_code, participant_id, token)


@router.get(
    '/participants/{participant_id}/cohort',
    response_model=CohortResponse,
    summary="Get Participant Peer Cohort",
    description="Resolve the peer ids for one participant along a comparison dimension."
)
async def get_participant_cohort(
    participant_id: str,
    store: RecordStoreDep,
    settings: SettingsDep,
    dimension: ComparisonDimension = Query(default=ComparisonDimension.GENDER),
    program: str = Query(default=ALL, description="Program id or 'all'"),
    company_code: Optional[str] = Query(default=None, description="Caller's organization code"),
) -> CohortResponse:
    """
    Get the resolved peer cohort for one participant.

    Raises:
        HTTPException 404: If the participant does not exist.
        HTTPException 500: If the lookup failed.
    """
    try:
        return await resolve_cohort(
            store,
            participant_id,
            dimension,
            FilterCriteria(program=program),
            company_code=company_code,
            max_cohort_size=settings.max_cohort_size,
            chunk_size=settings.in_query_chunk_size,
            candidate_limit=settings.cohort_candidate_limit,
        )
    except ParticipantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Error resolving cohort for participant={participant_id}: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to resolve cohort: {str(e)}"
        )
