"""
SQL Query Module for the Participant Analytics backend.

Provides parameterized SQL queries for the JSONB document table backing the
record store. Re-exported here so callers import from
participant_analytics.sql rather than from individual submodules.

Example usage:
    from participant_analytics.sql import get_documents_query, IN

    sql = get_documents_query('documents', [('participantId', IN)], limit=10)
"""

from participant_analytics.sql.document_queries import (
    get_document_by_id_query,
    get_documents_query,
    DOCUMENT_ID_FIELD,
    EQ,
    IN,
    ARRAY_CONTAINS,
    RANGE_OPERATORS,
    SUPPORTED_OPERATORS,
)

__all__ = [
    'get_document_by_id_query',
    'get_documents_query',
    'DOCUMENT_ID_FIELD',
    'EQ',
    'IN',
    'ARRAY_CONTAINS',
    'RANGE_OPERATORS',
    'SUPPORTED_OPERATORS',
]
