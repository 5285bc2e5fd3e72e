"""
ASGI application factory:

    uvicorn participant_analytics.main:create_app --factory

create_app() wires logging, CORS, the document store pool lifecycle, the
cancellation registry and the analytics routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from participant_analytics import __version__
from participant_analytics.api import api_router
from participant_analytics.core.config import Settings, get_settings
from participant_analytics.core.database import check_db, close_db, init_db
from participant_analytics.services.cancellation import CancellationRegistry


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the pool and a fresh registry on startup; close the pool on shutdown."""
    app.state.cancellation_registry = CancellationRegistry()
    try:
        await init_db()
    except Exception as e:
        # the pool is opened lazily by the first request instead
        logger.error(f"Document store unavailable at startup: {e}")

    yield

    in_flight = len(app.state.cancellation_registry)
    if in_flight:
        logger.info(f"Shutting down with {in_flight} analytics computations in flight")
    try:
        await close_db()
    except Exception as e:
        logger.error(f"Error closing document store pool: {e}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; settings default to the environment-backed singleton."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    application = FastAPI(
        title="Participant Analytics API",
        version=__version__,
        description=(
            "Participant performance analytics and peer benchmarking: KPIs, "
            "revenue and headcount series with drill-downs, intervention and "
            "compliance distributions, and peer-cohort overlays."
        ),
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    application.include_router(api_router)

    @application.get("/health")
    async def health_check():
        """Liveness plus document store reachability."""
        database = await check_db()
        return {
            "status": "healthy" if database else "degraded",
            "database": "up" if database else "down",
        }

    @application.get("/")
    async def root():
        return {
            "name": application.title,
            "version": __version__,
            "docs": "/docs",
        }

    return application


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("participant_analytics.main:create_app", factory=True, host="0.0.0.0", port=8000)
