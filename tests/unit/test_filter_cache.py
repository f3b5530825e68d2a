"""Unit tests for the client-side filter cache."""

import asyncio

import pytest

from trialscope.data_sources.base_client import DataSourceError
from trialscope.services.filter_cache import ClientSideFilterCache
from trialscope.services.query_translator import FilterContext, TrialQueryError

NA = FilterContext(phase="N/A")


@pytest.fixture
def registry(registry, make_study):
    """250 studies; every fifth has no phase, every seventh spans two phases."""
    studies = []
    for i in range(250):
        if i % 5 == 0:
            phases = []
        elif i % 7 == 0:
            phases = ["PHASE1", "PHASE2"]
        else:
            phases = ["PHASE3"]
        studies.append(make_study(f"NCT{i:08d}", phases=phases))
    registry.studies = studies
    return registry


@pytest.mark.asyncio
class TestEnsureCache:
    async def test_scans_until_exhausted(self, filter_cache, registry):
        entry = await filter_cache.ensure_cache(NA, "not_applicable")

        assert entry.total == 50
        assert entry.pages_scanned == 3
        assert entry.stop_reason == "exhausted"
        assert not entry.is_lower_bound
        assert entry.upstream_total == 250
        assert len(registry.calls) == 3

    async def test_scan_requests(self, filter_cache, registry):
        await filter_cache.ensure_cache(FilterContext(phase="N/A", status="recruiting"), "not_applicable")

        first, second = registry.calls[0], registry.calls[1]
        assert first["pageSize"] == 100
        assert first["countTotal"] == "true"
        assert first["filter.overallStatus"] == "RECRUITING"
        assert "filter.advanced" not in first
        assert second["pageToken"] == "cursor-100"
        assert "countTotal" not in second

    async def test_live_entry_is_reused(self, filter_cache, registry):
        first = await filter_cache.ensure_cache(NA, "not_applicable")
        second = await filter_cache.ensure_cache(NA, "not_applicable")

        assert first is second
        assert len(registry.calls) == 3

    async def test_expired_entry_is_rebuilt(self, filter_cache, registry, clock):
        await filter_cache.ensure_cache(NA, "not_applicable")
        clock.advance(299)
        await filter_cache.ensure_cache(NA, "not_applicable")
        assert len(registry.calls) == 3

        clock.advance(1)
        await filter_cache.ensure_cache(NA, "not_applicable")
        assert len(registry.calls) == 6

    async def test_concurrent_callers_share_one_scan(self, filter_cache, registry, store):
        entries = await asyncio.gather(
            filter_cache.ensure_cache(NA, "not_applicable"),
            filter_cache.ensure_cache(NA, "not_applicable"),
            filter_cache.ensure_cache(FilterContext(phase="n/a", page_size=50), "not_applicable"),
        )

        assert entries[0] is entries[1] is entries[2]
        assert len(registry.calls) == 3
        assert store.inflight == {}

    async def test_result_ceiling(self, registry, store):
        cache = ClientSideFilterCache(registry, store, max_results=20, max_pages=15)
        entry = await cache.ensure_cache(NA, "not_applicable")

        assert entry.stop_reason == "result_ceiling"
        assert entry.pages_scanned == 1
        assert entry.total == 20
        assert entry.is_lower_bound

    async def test_page_ceiling(self, registry, store):
        cache = ClientSideFilterCache(registry, store, max_results=1000, max_pages=2)
        entry = await cache.ensure_cache(NA, "not_applicable")

        assert entry.stop_reason == "page_ceiling"
        assert entry.pages_scanned == 2
        assert entry.total == 40
        assert entry.is_lower_bound

    async def test_first_page_error_propagates(self, filter_cache, registry, store):
        registry.fail_calls = {1}

        with pytest.raises(DataSourceError):
            await filter_cache.ensure_cache(NA, "not_applicable")
        assert filter_cache.peek(NA, "not_applicable") is None
        assert store.inflight == {}

        entry = await filter_cache.ensure_cache(NA, "not_applicable")
        assert entry.total == 50

    async def test_later_error_keeps_partial_result(self, filter_cache, registry):
        registry.fail_calls = {2}
        entry = await filter_cache.ensure_cache(NA, "not_applicable")

        assert entry.stop_reason == "upstream_error"
        assert entry.pages_scanned == 1
        assert entry.total == 20
        assert entry.is_lower_bound
        assert len(entry.errors) == 1

    async def test_unknown_predicate(self, filter_cache):
        with pytest.raises(TrialQueryError):
            await filter_cache.ensure_cache(NA, "prime_numbered")

    async def test_multi_phase_predicate(self, filter_cache):
        entry = await filter_cache.ensure_cache(FilterContext(phase="Multi-Phase"), "multi_phase")

        assert entry.total > 0
        assert all(len(t.phases) == 2 for t in entry.trials)


@pytest.mark.asyncio
class TestGetPage:
    async def test_slices_accumulated_matches(self, filter_cache, registry):
        page1 = await filter_cache.get_page(NA, "not_applicable", 1)
        page2 = await filter_cache.get_page(NA, "not_applicable", 2)

        assert [t.nct_id for t in page1.trials][:2] == ["NCT00000000", "NCT00000005"]
        assert page2.trials[0].nct_id == "NCT00000050"
        assert page1.total == 50
        assert page1.total_pages == 5
        assert page1.has_next_page
        assert not page1.has_prev_page
        assert page2.has_prev_page
        assert page1.source == "client_filter"
        assert not page1.total_is_lower_bound
        assert len(registry.calls) == 3

    async def test_page_sizes_share_the_scan(self, filter_cache, registry):
        await filter_cache.get_page(NA, "not_applicable", 1)
        result = await filter_cache.get_page(
            FilterContext(phase="N/A", page_size=25), "not_applicable", 2
        )

        assert len(result.trials) == 25
        assert result.total_pages == 2
        assert not result.has_next_page
        assert len(registry.calls) == 3

    async def test_last_and_past_last_page(self, filter_cache):
        last = await filter_cache.get_page(NA, "not_applicable", 5)
        past = await filter_cache.get_page(NA, "not_applicable", 9)

        assert len(last.trials) == 10
        assert not last.has_next_page
        assert past.trials == []
        assert not past.has_next_page

    async def test_lower_bound_is_flagged(self, registry, store):
        cache = ClientSideFilterCache(registry, store, max_results=20)
        result = await cache.get_page(NA, "not_applicable", 1)

        assert result.total == 20
        assert result.total_is_lower_bound

    async def test_no_matches(self, filter_cache, registry, make_study):
        registry.studies = [make_study("NCT00000001", phases=["PHASE1"])]
        result = await filter_cache.get_page(NA, "not_applicable", 1)

        assert result.trials == []
        assert result.total == 0
        assert result.total_pages == 1
        assert not result.has_next_page

    async def test_invalid_page(self, filter_cache):
        with pytest.raises(TrialQueryError):
            await filter_cache.get_page(NA, "not_applicable", 0)
