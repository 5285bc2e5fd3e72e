'''
Participant Analytics Test Suite

Test Modules:
-------------
- test_date_normalizer.py: timestamp objects, month labels, generic parsing
- test_time_bucketer.py: month/year keys and ordering
- test_intervention_merger.py: aliases, precedence, idempotency, statuses
- test_filter_engine.py: presets and the four filter predicates
- test_series_aggregator.py: monthly/annual folds, drill-downs, baseline
- test_cohort_resolver.py: dimensions, narrowing, cap, chunking
- test_peer_averager.py: per-bucket means, batching, per-peer failures
- test_analytics_facade.py: end-to-end bundles, cancellation, not-found
- test_cancellation.py: token and registry semantics
- test_record_store.py: predicates, SQL builders, PostgresRecordStore
- test_api.py: HTTP surface and error mapping

Running Tests:
--------------
    pip install -e ".[test]"
    pytest participant_analytics/tests -v
'''

__all__ = []
