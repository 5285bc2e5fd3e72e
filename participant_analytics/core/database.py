"""
asyncpg pool backing the document store.

One pool per process, opened in the FastAPI lifespan and shared by every
PostgresRecordStore. Pool bounds and the statement timeout come from Settings
(DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE, DB_COMMAND_TIMEOUT); every connection
decodes jsonb columns to dicts so document bodies need no further parsing.

    await init_db()                       # lifespan startup
    store = PostgresRecordStore(await get_db_pool())
    healthy = await check_db()            # /health check
    await close_db()                      # lifespan shutdown
"""

import json
import logging
from typing import Optional

import asyncpg
from asyncpg import Connection, Pool

from participant_analytics.core.config import get_settings


logger = logging.getLogger(__name__)


# =============================================================================
# Pool State
# =============================================================================

_pool: Optional[Pool] = None


async def _register_codecs(conn: Connection) -> None:
    """Decode jsonb to Python objects on this connection."""
    await conn.set_type_codec(
        'jsonb',
        encoder=json.dumps,
        decoder=json.loads,
        schema='pg_catalog',
    )


# =============================================================================
# Lifecycle
# =============================================================================

async def init_db() -> Pool:
    """
    Open the shared pool unless it is already open.

    Returns:
        Pool: The shared asyncpg pool.

    Raises:
        asyncpg.PostgresError: If the server rejects the connection.
        OSError: If the server cannot be reached.
    """
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()
    _pool = await asyncpg.create_pool(
        dsn=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout,
        init=_register_codecs,
    )
    logger.info(
        f"Document store pool opened ({settings.db_pool_min_size}-{settings.db_pool_max_size} connections)"
    )
    return _pool


async def get_db_pool() -> Pool:
    """The shared pool, opened on first use when the lifespan did not open it."""
    if _pool is None:
        return await init_db()
    return _pool


async def close_db() -> None:
    """Close the shared pool; a no-op when it was never opened."""
    global _pool

    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()


async def check_db() -> bool:
    """
    Round-trip a trivial statement through the pool.

    Returns:
        True when the database answered, False otherwise (errors are logged).
    """
    try:
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            await conn.fetchval('SELECT 1')
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.warning(f"Document store health check failed: {e}")
        return False
    return True
