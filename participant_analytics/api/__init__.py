"""
Participant Analytics API package initialization.

This package contains FastAPI router modules:
- participant_analytics: analytics bundle and peer cohort endpoints
"""

from fastapi import APIRouter

from participant_analytics.api.participant_analytics import router as participant_analytics_router

# Create main API router
api_router = APIRouter()

api_router.include_router(participant_analytics_router, tags=["participant-analytics"])

__all__ = [
    "api_router",
    "participant_analytics_router",
]
