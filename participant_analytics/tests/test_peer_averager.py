"""
Test suite for peer averaging.

Verifies per-bucket means (a bucket reported by one peer is that peer's
value), skipping of peers whose reads fail, batched document reads and
cancellation between stages.
"""

from datetime import date

import pytest

from participant_analytics.core.errors import AnalyticsCancelledError, RecordStoreError
from participant_analytics.core.record_store import (
    APPLICATIONS,
    PARTICIPANTS,
    monthly_history_collection,
)
from participant_analytics.models.schemas import FilterCriteria
from participant_analytics.services.cancellation import CancellationToken
from participant_analytics.services.peer_averager import average_peers, fetch_peer_documents


@pytest.mark.asyncio
class TestAveraging:

    async def test_single_reporting_peer_is_not_diluted(self, seeded_store) -> None:
        averages = await average_peers(seeded_store, ['p-002', 'p-003'], FilterCriteria())
        assert averages.contributing_peers == 2
        assert averages.revenue.value_map() == {'2024-01': 300.0}

    async def test_bucket_means_over_reporting_peers(self, seeded_store) -> None:
        seeded_store.add(monthly_history_collection('p-004'), 'm-02', {'createdAt': '2024-01-09', 'revenue': 100})
        averages = await average_peers(seeded_store, ['p-002', 'p-004'], FilterCriteria())
        assert averages.revenue.categories == ['2024-01', '2024-02']
        assert averages.revenue.data == [200.0, 80.0]

    async def test_filters_apply_to_peers(self, seeded_store) -> None:
        filters = FilterCriteria(dateRange=(date(2024, 2, 1), date(2024, 2, 29)))
        averages = await average_peers(seeded_store, ['p-002', 'p-004'], filters)
        assert averages.revenue.value_map() == {'2024-02': 80.0}

    async def test_compliance_in_fixed_order(self, seeded_store) -> None:
        seeded_store.add(PARTICIPANTS, 'p-002', {
            'gender': 'Female', 'companyCode': 'ORG1',
            'complianceDocuments': [{'status': 'expired'}, {'status': 'valid'}],
        })
        averages = await average_peers(seeded_store, ['p-002'], FilterCriteria())
        assert [(c.name, c.y) for c in averages.compliance_by_status] == [('Valid', 1.0), ('Expired', 1.0)]

    async def test_no_peers(self, seeded_store) -> None:
        averages = await average_peers(seeded_store, [], FilterCriteria())
        assert averages.contributing_peers == 0
        assert averages.revenue.categories == []
        assert seeded_store.calls == []


@pytest.mark.asyncio
class TestSkipping:

    async def test_failing_peer_is_skipped(self, seeded_store) -> None:
        seeded_store.failing.add(monthly_history_collection('p-002'))
        averages = await average_peers(seeded_store, ['p-002', 'p-004'], FilterCriteria())
        assert averages.skipped_peers == ['p-002']
        assert averages.contributing_peers == 1
        assert averages.revenue.value_map() == {'2024-02': 80.0}

    async def test_unknown_peer_is_skipped(self, seeded_store) -> None:
        averages = await average_peers(seeded_store, ['p-404', 'p-002'], FilterCriteria())
        assert averages.skipped_peers == ['p-404']
        assert averages.contributing_peers == 1

    async def test_batched_read_failure_propagates(self, seeded_store) -> None:
        seeded_store.failing.add(APPLICATIONS)
        with pytest.raises(RecordStoreError):
            await average_peers(seeded_store, ['p-002'], FilterCriteria())


@pytest.mark.asyncio
class TestBatchedReads:

    async def test_membership_batches_never_exceed_ten(self, empty_store) -> None:
        peer_ids = [f"p-{n:03d}" for n in range(23)]
        for pid in peer_ids:
            empty_store.add(PARTICIPANTS, pid, {'gender': 'Female'})
            empty_store.add(APPLICATIONS, f"app-{pid}", {'participantId': pid, 'programId': 'P1'})

        documents = await fetch_peer_documents(empty_store, peer_ids)

        assert set(documents) == set(peer_ids)
        assert all(d['participant'] is not None and d['application'] is not None for d in documents.values())
        participant_reads = empty_store.queries_on(PARTICIPANTS)
        application_reads = empty_store.queries_on(APPLICATIONS)
        assert len(participant_reads) == len(application_reads) == 3
        for preds in participant_reads + application_reads:
            assert all(len(p.value) <= 10 for p in preds if p.op == 'in')

    async def test_first_application_wins(self, empty_store) -> None:
        empty_store.add(PARTICIPANTS, 'p-1', {})
        empty_store.add(APPLICATIONS, 'a-1', {'participantId': 'p-1', 'programId': 'P1'})
        empty_store.add(APPLICATIONS, 'a-2', {'participantId': 'p-1', 'programId': 'P2'})
        documents = await fetch_peer_documents(empty_store, ['p-1'])
        assert documents['p-1']['application']['programId'] == 'P1'

    async def test_participant_found_by_participant_id_field(self, seeded_store) -> None:
        seeded_store.add(PARTICIPANTS, 'doc-77', {
            'participantId': 'p-077', 'companyCode': 'ORG1',
            'revenueHistory': {'monthly': {'2024-01': 1000}},
        })
        seeded_store.add(APPLICATIONS, 'app-077', {'participantId': 'p-077', 'programId': 'P9', 'companyCode': 'ORG1'})

        documents = await fetch_peer_documents(seeded_store, ['p-002', 'p-077'])
        assert documents['p-077']['participant']['id'] == 'doc-77'
        assert documents['p-002']['participant']['id'] == 'p-002'
        field_reads = [
            preds for preds in seeded_store.queries_on(PARTICIPANTS)
            if preds and preds[0].field == 'participantId'
        ]
        assert [list(preds[0].value) for preds in field_reads] == [['p-077']]

        averages = await average_peers(seeded_store, ['p-077'], FilterCriteria())
        assert averages.contributing_peers == 1
        assert averages.revenue.value_map() == {'2024-01': 1000.0}


@pytest.mark.asyncio
class TestCancellation:

    async def test_cancelled_token_stops_averaging(self, seeded_store) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalyticsCancelledError):
            await average_peers(seeded_store, ['p-002'], FilterCriteria(), token=token)
