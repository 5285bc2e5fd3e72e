"""
Record store access layer.

The analytics engine never talks to the database directly: it reads read-only
document snapshots through the RecordStore interface, which supports only the
predicates the surrounding application's document store offers (equality,
range, array-contains and batched membership with at most
MAX_IN_PREDICATE_VALUES values).

PostgresRecordStore implements the interface over the asyncpg pool and the
JSONB document table described in participant_analytics.sql.document_queries.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import asyncpg
from asyncpg import Pool

from participant_analytics.core.database import get_db_pool
from participant_analytics.core.errors import PredicateError, RecordStoreError
from participant_analytics.sql.document_queries import (
    DOCUMENT_ID_FIELD,
    IN,
    SUPPORTED_OPERATORS,
    get_document_by_id_query,
    get_documents_query,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Collections
# =============================================================================

PARTICIPANTS = 'participants'
APPLICATIONS = 'applications'
ASSIGNED_INTERVENTIONS = 'assignedInterventions'
INTERVENTIONS_DATABASE = 'interventionsDatabase'

# The store rejects membership predicates larger than this
MAX_IN_PREDICATE_VALUES = 10


def monthly_history_collection(participant_id: str) -> str:
    """Path of the monthly performance sub-collection for one participant."""
    return f"monthlyPerformance/{participant_id}/history"


# =============================================================================
# Predicates
# =============================================================================

@dataclass(frozen=True)
class Predicate:
    """
    One where-clause against a document field.

    Attributes:
        field: Document field name, or DOCUMENT_ID_FIELD for the document id.
        op: One of '==', 'in', 'array-contains', '>=', '<=', '>', '<'.
        value: Comparison value; a list for 'in'.
    """
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPERATORS:
            raise PredicateError(f"Unsupported operator {self.op!r} on field {self.field!r}")
        if self.op == IN:
            if not isinstance(self.value, (list, tuple)):
                raise PredicateError(f"'in' predicate on {self.field!r} needs a list value")
            if len(self.value) > MAX_IN_PREDICATE_VALUES:
                raise PredicateError(
                    f"'in' predicate on {self.field!r} has {len(self.value)} values; "
                    f"the store accepts at most {MAX_IN_PREDICATE_VALUES}"
                )


def where(field: str, op: str, value: Any) -> Predicate:
    """Shorthand constructor: where('participantId', '==', pid)."""
    return Predicate(field=field, op=op, value=value)


def where_id_in(ids: Sequence[str]) -> Predicate:
    return Predicate(field=DOCUMENT_ID_FIELD, op=IN, value=list(ids))


# =============================================================================
# Interface
# =============================================================================

class RecordStore(ABC):
    """Read-only document store queried by predicates."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document (with its 'id') or None."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return all documents of a collection matching every predicate."""


# =============================================================================
# PostgreSQL implementation
# =============================================================================

def _to_text(value: Any) -> Optional[str]:
    """
    Render a predicate value the way ``data->>'field'`` renders JSON scalars.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


class PostgresRecordStore(RecordStore):
    """
    RecordStore over the asyncpg pool and the JSONB document table.

    Args:
        pool: Connection pool; resolved lazily from get_db_pool() when omitted.
        table: Document table name.
    """

    def __init__(self, pool: Optional[Pool] = None, table: str = 'documents') -> None:
        self._pool = pool
        self._table = table

    async def _get_pool(self) -> Pool:
        if self._pool is None:
            self._pool = await get_db_pool()
        return self._pool

    @staticmethod
    def _to_document(row: Any) -> Dict[str, Any]:
        data = row['data'] or {}
        return {'id': row['id'], **data}

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(get_document_by_id_query(self._table), collection, doc_id)
        except (asyncpg.PostgresError, OSError) as e:
            raise RecordStoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        return self._to_document(row) if row else None

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        sql = get_documents_query(
            self._table,
            [(p.field, p.op) for p in predicates],
            limit=limit,
        )
        args: List[Any] = [collection]
        for p in predicates:
            if p.op == IN:
                args.append([_to_text(v) for v in p.value])
            else:
                args.append(_to_text(p.value))

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        except (asyncpg.PostgresError, OSError) as e:
            raise RecordStoreError(f"Failed to query {collection}: {e}") from e

        logger.debug(f"Query on {collection} with {len(predicates)} predicates returned {len(rows)} rows")
        return [self._to_document(row) for row in rows]
