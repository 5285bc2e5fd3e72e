"""
Pytest Configuration and Shared Fixtures for Participant Analytics Tests.

This module provides fixtures and configuration for all tests, supporting:
- Async test execution with pytest-asyncio
- An in-memory RecordStore implementing the same predicate contract as the
  PostgreSQL store (equality, range, array-contains, 'in' with at most 10
  values), with call recording and failure injection
- A mock asyncpg pool for PostgresRecordStore tests
- A seeded organization: one subject participant with all four intervention
  sources, monthly history and historical maps, plus a handful of peers

Seeded subject p-001 (org ORG1, program P1, gender Female, sector Agriculture):
- required interventions i1..i4, completed i1, assigned i2 (fully completed)
- monthly history: 2024-01 revenue 100 (3 + 1 staff), 2024-02 revenue 200 (4 + 1)
- revenueHistory.monthly {'2024-01': 50}; annual {'2023': 900, '2024': 500}
- headcountHistory.monthly {'2024-01': {permanent 2, temporary 1}}
- compliance [valid, valid, expired]

Peers in ORG1: p-002 (Female, P1, 2024-01 revenue 300), p-003 (Female, P2,
no data), p-004 (Male, P1). p-900 belongs to ORG2.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from unittest.mock import AsyncMock, Mock

import pytest

from participant_analytics.core.errors import PredicateError, RecordStoreError
from participant_analytics.core.record_store import (
    APPLICATIONS,
    ASSIGNED_INTERVENTIONS,
    MAX_IN_PREDICATE_VALUES,
    PARTICIPANTS,
    Predicate,
    RecordStore,
    monthly_history_collection,
)
from participant_analytics.sql.document_queries import DOCUMENT_ID_FIELD


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - scenario: end-to-end scenarios over the seeded store
    """
    config.addinivalue_line(
        'markers',
        'scenario: end-to-end analytics scenarios over the seeded store'
    )


# ============================================================
# IN-MEMORY RECORD STORE
# ============================================================

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _matches(doc_id: str, data: Dict[str, Any], predicate: Predicate) -> bool:
    if predicate.field == DOCUMENT_ID_FIELD:
        actual: Any = doc_id
    else:
        actual = data.get(predicate.field)

    if predicate.op == 'array-contains':
        return isinstance(actual, list) and predicate.value in actual

    actual_text = _as_text(actual)
    if actual_text is None:
        return False
    if predicate.op == '==':
        return actual_text == _as_text(predicate.value)
    if predicate.op == 'in':
        return actual_text in [_as_text(v) for v in predicate.value]

    expected = _as_text(predicate.value)
    return {
        '>=': actual_text >= expected,
        '<=': actual_text <= expected,
        '>': actual_text > expected,
        '<': actual_text < expected,
    }[predicate.op]


class InMemoryRecordStore(RecordStore):
    """
    RecordStore over nested dicts.

    Attributes:
        collections: {collection: {doc_id: data}}
        calls: ('get' | 'query', collection, predicates) per call, in order
        failing: collections whose reads raise RecordStoreError
    """

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, Tuple[Predicate, ...]]] = []
        self.failing: Set[str] = set()

    def add(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = dict(data)

    def _check(self, collection: str) -> None:
        if collection in self.failing:
            raise RecordStoreError(f"injected failure reading {collection}")

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(('get', collection, ()))
        self._check(collection)
        data = self.collections.get(collection, {}).get(doc_id)
        return {'id': doc_id, **data} if data is not None else None

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        self.calls.append(('query', collection, tuple(predicates)))
        for p in predicates:
            if p.op == 'in' and len(p.value) > MAX_IN_PREDICATE_VALUES:
                raise PredicateError(f"'in' predicate with {len(p.value)} values")
        self._check(collection)

        docs = [
            {'id': doc_id, **data}
            for doc_id, data in sorted(self.collections.get(collection, {}).items())
            if all(_matches(doc_id, data, p) for p in predicates)
        ]
        return docs[:limit] if limit is not None else docs

    def queries_on(self, collection: str) -> List[Tuple[Predicate, ...]]:
        return [preds for kind, coll, preds in self.calls if kind == 'query' and coll == collection]


# ============================================================
# STORE FIXTURES
# ============================================================

@pytest.fixture
def empty_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


def seed_subject(store: InMemoryRecordStore) -> None:
    store.add(PARTICIPANTS, 'p-001', {
        'beneficiaryName': 'Acme Bakery',
        'name': 'Acme',
        'gender': 'Female',
        'sector': 'Agriculture',
        'companyCode': 'ORG1',
        'revenueHistory': {
            'monthly': {'2024-01': 50},
            'annual': {'2023': 900, '2024': 500},
        },
        'headcountHistory': {
            'monthly': {'2024-01': {'permanent': 2, 'temporary': 1}},
        },
        'complianceDocuments': [
            {'type': 'Tax Clearance', 'status': 'valid'},
            {'type': 'BEE Certificate', 'status': 'valid'},
            {'type': 'CIPC', 'status': 'expired'},
        ],
    })
    store.add(APPLICATIONS, 'app-001', {
        'participantId': 'p-001',
        'programId': 'P1',
        'companyCode': 'ORG1',
        'submittedAt': '2024-01-15',
        'interventions': {
            'required': [
                {'id': 'i1', 'title': 'Branding', 'area': 'Marketing'},
                {'id': 'i2', 'title': 'Bookkeeping', 'area': 'Finance'},
                {'id': 'i3', 'title': 'Website', 'area': 'Marketing'},
                {'id': 'i4', 'title': 'Mentoring', 'area': 'Operations'},
            ],
            'completed': [
                {'id': 'i1', 'title': 'Branding', 'area': 'Marketing', 'completedAt': '2024-01-20'},
            ],
        },
    })
    store.add(ASSIGNED_INTERVENTIONS, 'a-001', {
        'participantId': 'p-001',
        'interventionId': 'i2',
        'interventionTitle': 'Bookkeeping',
        'areaOfSupport': 'Finance',
        'consultantStatus': 'accepted',
        'userStatus': 'accepted',
        'consultantCompletionStatus': 'done',
        'userCompletionStatus': 'done',
        'consultantEmail': 'jane@consult.io',
        'consultantName': 'Jane Doe',
        'completedAt': '2024-02-10',
        'programId': 'P1',
    })
    history = monthly_history_collection('p-001')
    store.add(history, 'm-01', {
        'createdAt': '2024-01-20', 'month': 'January',
        'revenue': 100, 'headPermanent': 3, 'headTemporary': 1,
    })
    store.add(history, 'm-02', {
        'createdAt': '2024-02-18', 'month': 'February',
        'revenue': 200, 'headPermanent': 4, 'headTemporary': 1,
    })


def seed_peers(store: InMemoryRecordStore) -> None:
    store.add(PARTICIPANTS, 'p-002', {
        'beneficiaryName': 'Bright Farms', 'gender': 'Female', 'sector': 'Agriculture', 'companyCode': 'ORG1',
    })
    store.add(APPLICATIONS, 'app-002', {'participantId': 'p-002', 'programId': 'P1', 'companyCode': 'ORG1'})
    store.add(monthly_history_collection('p-002'), 'm-01', {'createdAt': '2024-01-11', 'revenue': 300})

    store.add(PARTICIPANTS, 'p-003', {
        'beneficiaryName': 'Coastal Crafts', 'gender': 'Female', 'sector': 'Retail', 'companyCode': 'ORG1',
    })
    store.add(APPLICATIONS, 'app-003', {'participantId': 'p-003', 'programId': 'P2', 'companyCode': 'ORG1'})

    store.add(PARTICIPANTS, 'p-004', {
        'beneficiaryName': 'Delta Logistics', 'gender': 'Male', 'sector': 'Agriculture', 'companyCode': 'ORG1',
    })
    store.add(APPLICATIONS, 'app-004', {'participantId': 'p-004', 'programId': 'P1', 'companyCode': 'ORG1'})
    store.add(monthly_history_collection('p-004'), 'm-01', {'createdAt': '2024-02-03', 'revenue': 80})

    store.add(PARTICIPANTS, 'p-900', {
        'beneficiaryName': 'Other Org Co', 'gender': 'Female', 'sector': 'Agriculture', 'companyCode': 'ORG2',
    })


@pytest.fixture
def seeded_store() -> InMemoryRecordStore:
    """Subject p-001 plus peers p-002..p-004 and an ORG2 participant."""
    store = InMemoryRecordStore()
    seed_subject(store)
    seed_peers(store)
    return store


@pytest.fixture
def reference_date() -> date:
    """Fixed 'today' for yearless month labels."""
    return date(2024, 6, 30)


# ============================================================
# DATABASE MOCK FIXTURES
# ============================================================

@pytest.fixture
def mock_db_pool() -> Mock:
    """
    Create a mock asyncpg connection pool for PostgresRecordStore tests.

    Methods Mocked:
        - pool.acquire(): Returns async context manager yielding the connection
        - conn.fetch(query, *args): Returns []
        - conn.fetchrow(query, *args): Returns None

    Usage:
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        conn.fetch.return_value = [{'id': 'p-001', 'data': {...}}]
    """
    pool = Mock()

    conn = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)

    acquire_context = AsyncMock()
    acquire_context.__aenter__ = AsyncMock(return_value=conn)
    acquire_context.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = Mock(return_value=acquire_context)

    return pool
