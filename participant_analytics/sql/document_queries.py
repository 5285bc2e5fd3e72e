"""
Document Queries Module for the Participant Analytics backend.

Provides parameterized PostgreSQL queries against the JSONB document table that
backs the record store. Every collection (participants, applications,
assignedInterventions, interventionsDatabase, monthly performance history
sub-collections) lives in one table keyed by (collection, id):

    CREATE TABLE documents (
        collection TEXT  NOT NULL,
        id         TEXT  NOT NULL,
        data       JSONB NOT NULL,
        PRIMARY KEY (collection, id)
    );

Sub-collections use their full path as the collection name, e.g.
``monthlyPerformance/P-001/history``.

Only equality, range, membership ("in") and array-contains predicates are
supported, mirroring what the surrounding application's document store offers.
Field names are interpolated into SQL text and are therefore validated against
a strict identifier pattern; all values travel as ``$n`` parameters.
"""

import re
from typing import List, Optional, Sequence, Tuple


# =============================================================================
# CONSTANTS
# =============================================================================

# Pseudo-field addressing the document id column instead of a JSON field
DOCUMENT_ID_FIELD: str = '__id__'

# Supported predicate operators
EQ: str = '=='
IN: str = 'in'
ARRAY_CONTAINS: str = 'array-contains'
RANGE_OPERATORS: Tuple[str, ...] = ('>=', '<=', '>', '<')
SUPPORTED_OPERATORS: Tuple[str, ...] = (EQ, IN, ARRAY_CONTAINS) + RANGE_OPERATORS

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


# =============================================================================
# HELPERS
# =============================================================================

def _check_identifier(name: str) -> str:
    """
    Validate a table or field name before it is interpolated into SQL.

    Raises:
        ValueError: If the name is not a plain identifier.
    """
    if not _IDENTIFIER.match(name or ''):
        raise ValueError(f"Invalid identifier for document query: {name!r}")
    return name


def _column_for(field: str) -> str:
    if field == DOCUMENT_ID_FIELD:
        return 'id'
    return f"data->>'{_check_identifier(field)}'"


# =============================================================================
# QUERY BUILDERS
# =============================================================================

def get_document_by_id_query(table: str) -> str:
    """
    Generate SQL fetching one document by collection and id.

    Parameters: $1 collection, $2 document id.
    """
    return f"""
        SELECT id, data
        FROM {_check_identifier(table)}
        WHERE collection = $1 AND id = $2
        LIMIT 1
    """


def get_documents_query(
    table: str,
    predicates: Sequence[Tuple[str, str]],
    limit: Optional[int] = None
) -> str:
    """
    Generate SQL selecting documents of one collection matching all predicates.

    Args:
        table: Document table name.
        predicates: Ordered (field, operator) pairs. The value for predicate i
            is bound to parameter ``$(i + 2)``; ``$1`` is always the collection.
        limit: Optional row limit.

    Returns:
        Parameterized PostgreSQL query string. Rows are ordered by id so that
        repeated reads return documents in a stable order.

    Raises:
        ValueError: On an unsupported operator or invalid identifier.

    Example:
        >>> sql = get_documents_query('documents', [('companyCode', '=='), ('participantId', 'in')])
        >>> "data->>'participantId' = ANY($3::text[])" in sql
        True
    """
    clauses: List[str] = ['collection = $1']

    for index, (field, operator) in enumerate(predicates, start=2):
        if operator == EQ:
            clauses.append(f"{_column_for(field)} = ${index}")
        elif operator == IN:
            clauses.append(f"{_column_for(field)} = ANY(${index}::text[])")
        elif operator == ARRAY_CONTAINS:
            # jsonb ? text: true when the array holds that string element
            clauses.append(f"data->'{_check_identifier(field)}' ? ${index}")
        elif operator in RANGE_OPERATORS:
            clauses.append(f"{_column_for(field)} {operator} ${index}")
        else:
            raise ValueError(f"Unsupported predicate operator: {operator!r}")

    query = f"""
        SELECT id, data
        FROM {_check_identifier(table)}
        WHERE {' AND '.join(clauses)}
        ORDER BY id ASC
    """
    if limit is not None:
        query += f"        LIMIT {int(limit)}\n"
    return query

