"""
End-to-end tests for compute_analytics() over the seeded in-memory store.

The seeded subject p-001 exercises every storage shape at once, so these
scenarios pin the combined behavior: additive monthly folding, annual
fallback without double counting, four-source intervention merging, KPIs,
baseline warnings and peer overlays aligned onto the subject's axes.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from participant_analytics.core.errors import (
    AnalyticsCancelledError,
    ParticipantNotFoundError,
    RecordStoreError,
)
from participant_analytics.core.record_store import PARTICIPANTS
from participant_analytics.models.enums import ComparisonDimension
from participant_analytics.models.schemas import CohortDefinition, FilterCriteria
from participant_analytics.services import analytics_facade
from participant_analytics.services.analytics_facade import (
    PEER_FAILURE_WARNING,
    compute_analytics,
    resolve_cohort,
)
from participant_analytics.services.cancellation import CancellationToken
from participant_analytics.services.participant_loader import participation_rate


GENDER_COHORT = CohortDefinition(enabled=True, dimension=ComparisonDimension.GENDER)


# =============================================================================
# Subject analytics
# =============================================================================


@pytest.mark.scenario
@pytest.mark.asyncio
class TestSubjectAnalytics:

    async def test_revenue_combines_both_storage_shapes(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.revenueMonthly.categories == ['2024-01', '2024-02']
        assert bundle.revenueMonthly.data == [150.0, 200.0]

    async def test_annual_uses_fallback_only_for_uncovered_years(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.revenueAnnual.categories == ['2023', '2024']
        assert bundle.revenueAnnual.data == [900.0, 350.0]
        assert bundle.revenueAnnual.drilldown == [None, 'revenue-2024']
        assert [d.id for d in bundle.revenueDrilldown] == ['revenue-2024']

    async def test_kpis(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.displayName == 'Acme Bakery'
        assert bundle.kpis.requiredInterventions == 4
        assert bundle.kpis.completedInterventions == 2
        assert bundle.kpis.participationRate == 50
        assert bundle.kpis.currentHeadcount == 5.0

    async def test_headcount_with_drilldown(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.headcountMonthly.categories == ['2024-01', '2024-02']
        assert bundle.headcountMonthly.data == [7.0, 5.0]
        january = bundle.headcountDrilldown[0]
        assert january.id == bundle.headcountMonthly.drilldown[0]
        assert january.data == [5.0, 2.0]

    async def test_interventions_merged_across_sources(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert [i.key for i in bundle.interventions] == ['i1', 'i2', 'i3', 'i4']
        bookkeeping = bundle.interventions[1]
        assert bookkeeping.status == 'Completed'
        assert bookkeeping.consultantRef == 'jane@consult.io'
        assert [(c.name, c.y) for c in bundle.interventionsByArea] == [('Finance', 1.0), ('Marketing', 1.0)]
        assert [(c.name, c.y) for c in bundle.interventionsByStatus] == [('Completed', 2.0), ('Pending', 2.0)]

    async def test_compliance_distribution(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert [(c.name, c.y) for c in bundle.complianceByStatus] == [('Valid', 2.0), ('Expired', 1.0)]

    async def test_baseline_warning(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.warnings == [
            "Baseline expects: Oct 2023, Nov 2023, Dec 2023. "
            "Missing entries for: October, November, December."
        ]

    async def test_same_inputs_same_bundle(self, seeded_store, reference_date) -> None:
        first = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        second = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert first.model_dump() == second.model_dump()


@pytest.mark.scenario
@pytest.mark.asyncio
class TestFilteredAnalytics:

    async def test_date_range_scopes_everything(self, seeded_store, reference_date) -> None:
        filters = FilterCriteria(dateRange=(date(2024, 2, 1), date(2024, 2, 29)))
        bundle = await compute_analytics(seeded_store, 'p-001', filters, reference=reference_date)
        assert bundle.revenueMonthly.value_map() == {'2024-02': 200.0}
        assert bundle.revenueAnnual.value_map() == {'2024': 200.0}
        assert [i.key for i in bundle.interventions] == ['i2']
        assert bundle.kpis.completedInterventions == 1
        assert bundle.kpis.participationRate == 25

    async def test_consultant_filter(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(
            seeded_store, 'p-001', FilterCriteria(consultant='JANE'), reference=reference_date
        )
        assert [i.key for i in bundle.interventions] == ['i2']

    async def test_program_filter_excluding_everything(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(
            seeded_store, 'p-001', FilterCriteria(program='P9'), reference=reference_date
        )
        assert bundle.interventions == []
        assert bundle.kpis.completedInterventions == 0
        assert bundle.kpis.requiredInterventions == 4


# =============================================================================
# Not found and empty
# =============================================================================


@pytest.mark.asyncio
class TestSubjectLookup:

    async def test_unknown_participant(self, seeded_store) -> None:
        with pytest.raises(ParticipantNotFoundError):
            await compute_analytics(seeded_store, 'nope')

    async def test_other_organization_is_not_found(self, seeded_store) -> None:
        with pytest.raises(ParticipantNotFoundError):
            await compute_analytics(seeded_store, 'p-001', company_code='ORG2')

    async def test_lookup_by_participant_id_field(self, empty_store) -> None:
        empty_store.add(PARTICIPANTS, 'doc-9', {'participantId': 'ext-9', 'name': 'Nine'})
        bundle = await compute_analytics(empty_store, 'ext-9')
        assert bundle.participantId == 'ext-9'
        assert bundle.displayName == 'Nine'

    async def test_found_but_empty(self, empty_store) -> None:
        empty_store.add(PARTICIPANTS, 'p-empty', {'companyCode': 'ORG1'})
        bundle = await compute_analytics(empty_store, 'p-empty', company_code='ORG1')
        assert bundle.is_empty
        assert bundle.displayName == 'p-empty'
        assert bundle.kpis.participationRate == 0
        assert bundle.kpis.currentHeadcount == 0.0


# =============================================================================
# Peer overlays
# =============================================================================


@pytest.mark.scenario
@pytest.mark.asyncio
class TestPeerOverlay:

    async def test_gender_overlay_aligned_to_subject(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(
            seeded_store, 'p-001', cohort=GENDER_COHORT, reference=reference_date
        )
        peers = bundle.peers
        assert peers.peerIds == ['p-002', 'p-003']
        assert peers.cohortValue == 'Female'
        assert peers.contributingPeers == 2
        assert peers.revenueMonthly.categories == bundle.revenueMonthly.categories
        assert peers.revenueMonthly.data == [300.0, 0.0]
        assert [c.name for c in peers.complianceByStatus] == ['Valid', 'Expired']
        assert [c.y for c in peers.complianceByStatus] == [0.0, 0.0]

    async def test_disabled_cohort_has_no_overlay(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(seeded_store, 'p-001', reference=reference_date)
        assert bundle.peers is None

    async def test_empty_cohort_warns(self, seeded_store, reference_date) -> None:
        bundle = await compute_analytics(
            seeded_store, 'p-004', cohort=GENDER_COHORT, reference=reference_date
        )
        assert bundle.peers.peerIds == []
        assert "No peers share this participant's gender (Male)." in bundle.warnings

    async def test_peer_failure_keeps_subject_data(self, seeded_store, reference_date, monkeypatch) -> None:
        monkeypatch.setattr(
            analytics_facade, 'average_peers', AsyncMock(side_effect=RecordStoreError('store down'))
        )
        bundle = await compute_analytics(
            seeded_store, 'p-001', cohort=GENDER_COHORT, reference=reference_date
        )
        assert bundle.revenueMonthly.data == [150.0, 200.0]
        assert bundle.peers.peerIds == []
        assert bundle.peers.revenueMonthly.categories == []
        assert PEER_FAILURE_WARNING in bundle.warnings

    async def test_resolve_cohort(self, seeded_store) -> None:
        response = await resolve_cohort(seeded_store, 'p-001', ComparisonDimension.SECTOR)
        assert response.peerIds == ['p-002', 'p-004']
        assert response.cohortValue == 'Agriculture'


# =============================================================================
# Cancellation
# =============================================================================


@pytest.mark.asyncio
class TestCancellation:

    async def test_cancelled_before_start(self, seeded_store) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(AnalyticsCancelledError):
            await compute_analytics(seeded_store, 'p-001', token=token)

    async def test_cancelled_during_peer_stage(self, seeded_store, monkeypatch) -> None:
        token = CancellationToken()

        async def cancelling_average(*args, **kwargs):
            token.cancel('superseded')
            raise AnalyticsCancelledError('superseded')

        monkeypatch.setattr(analytics_facade, 'average_peers', cancelling_average)
        with pytest.raises(AnalyticsCancelledError):
            await compute_analytics(seeded_store, 'p-001', cohort=GENDER_COHORT, token=token)


class TestParticipationRate:

    @pytest.mark.parametrize('completed,required,expected', [
        (2, 4, 50), (1, 3, 33), (2, 3, 67), (1, 8, 13), (5, 4, 100), (3, 0, 0),
    ])
    def test_rounding_and_cap(self, completed: int, required: int, expected: int) -> None:
        assert participation_rate(completed, required) == expected
