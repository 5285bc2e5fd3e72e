"""
FastAPI dependency injection module for the Participant Analytics backend.

Provides reusable dependencies for configuration, the record store and the
per-application cancellation registry, so endpoint handlers stay decoupled
from infrastructure and tests can override any of them through
``app.dependency_overrides``.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_record_store: Returns a PostgresRecordStore bound to the shared pool
- get_cancellation_registry: Returns the registry stored on app.state
- SettingsDep / RecordStoreDep / RegistryDep: Annotated aliases for endpoints

Usage Examples:
    @router.get("/participants/{participant_id}/analytics")
    async def get_analytics(
        participant_id: str,
        store: RecordStoreDep,
        settings: SettingsDep,
    ) -> AnalyticsBundle:
        ...
"""

from typing import Annotated

from fastapi import Depends, Request

from participant_analytics.core.config import Settings, get_settings
from participant_analytics.core.database import get_db_pool
from participant_analytics.core.record_store import PostgresRecordStore, RecordStore
from participant_analytics.services.cancellation import CancellationRegistry


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can do:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


# =============================================================================
# Record Store Dependency
# =============================================================================

async def get_record_store(
    settings: Annotated[Settings, Depends(get_settings_dependency)]
) -> RecordStore:
    """
    Return a record store bound to the shared connection pool.

    The store itself is stateless; connections are acquired per query and
    released immediately, so concurrent fetches inside one analytics request
    use separate pool connections.
    """
    pool = await get_db_pool()
    return PostgresRecordStore(pool=pool, table=settings.documents_table)


# =============================================================================
# Cancellation Registry Dependency
# =============================================================================

def get_cancellation_registry(request: Request) -> CancellationRegistry:
    """
    Return the application-wide registry of in-flight analytics computations.

    Created lazily on first use and kept on ``app.state`` for the lifetime of
    the process.
    """
    registry = getattr(request.app.state, 'cancellation_registry', None)
    if registry is None:
        registry = CancellationRegistry()
        request.app.state.cancellation_registry = registry
    return registry


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

RecordStoreDep = Annotated[RecordStore, Depends(get_record_store)]

RegistryDep = Annotated[CancellationRegistry, Depends(get_cancellation_registry)]
