"""
Core infrastructure package for the FastAPI backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- The read-only RecordStore over the JSONB document table
- FastAPI dependency injection utilities

Simplified imports:

    from participant_analytics.core import get_settings, RecordStore, where

Instead of:

    from participant_analytics.core.config import get_settings
    from participant_analytics.core.record_store import RecordStore, where
"""

# =============================================================================
# Re-exports from participant_analytics.core.config
# =============================================================================
from participant_analytics.core.config import Settings, get_settings

# =============================================================================
# Re-exports from participant_analytics.core.database
# =============================================================================
from participant_analytics.core.database import init_db, close_db, get_db_pool, check_db

# =============================================================================
# Re-exports from participant_analytics.core.errors
# =============================================================================
from participant_analytics.core.errors import (
    AnalyticsError,
    AnalyticsCancelledError,
    ParticipantNotFoundError,
    PredicateError,
    RecordStoreError,
)

# =============================================================================
# Re-exports from participant_analytics.core.record_store
# =============================================================================
from participant_analytics.core.record_store import (
    Predicate,
    RecordStore,
    PostgresRecordStore,
    where,
    where_id_in,
    monthly_history_collection,
    MAX_IN_PREDICATE_VALUES,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    'check_db',
    # Errors (from errors.py)
    'AnalyticsError',
    'AnalyticsCancelledError',
    'ParticipantNotFoundError',
    'PredicateError',
    'RecordStoreError',
    # Record store (from record_store.py)
    'Predicate',
    'RecordStore',
    'PostgresRecordStore',
    'where',
    'where_id_in',
    'monthly_history_collection',
    'MAX_IN_PREDICATE_VALUES',
]
