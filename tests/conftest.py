"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from trialscope.data_sources.base_client import DataSourceError, TrialNotFoundError
from trialscope.models.model_clinical_trials import StudyBatch
from trialscope.services.filter_cache import ClientSideFilterCache
from trialscope.services.pagination import CursorPaginationCoordinator
from trialscope.services.state_store import QueryStateStore
from trialscope.services.trials import TrialsService


def build_study(
    nct_id: str,
    phases: list[str] | None = None,
    countries: list[str] | None = None,
    status: str = "RECRUITING",
    title: str | None = None,
) -> dict[str, Any]:
    """Minimal v2 study record."""
    return {
        "protocolSection": {
            "identificationModule": {
                "nctId": nct_id,
                "briefTitle": title or f"Study {nct_id}",
            },
            "statusModule": {"overallStatus": status},
            "designModule": {"phases": phases or []},
            "contactsLocationsModule": {
                "locations": [{"country": c} for c in countries or []]
            },
        }
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRegistry:
    """In-memory stand-in for ClinicalTrialsClient with real cursor semantics.

    Cursors are opaque strings "cursor-<offset>". AREA[Phase] filters match
    any study whose phase list *contains* the code, like the real registry.
    """

    def __init__(self, studies: list[dict[str, Any]] | None = None):
        self.studies = studies or []
        self.calls: list[dict[str, Any]] = []
        self.fail_calls: set[int] = set()  # 1-based indexes of calls that fail
        self.counts: dict[str, int] = {}
        self.count_failures: set[str] = set()
        self.field_sizes: list[dict[str, Any]] | Exception = []
        self.count_calls: list[dict[str, Any]] = []

    def _matching(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        result = self.studies
        advanced = params.get("filter.advanced")
        if advanced:
            code = advanced.removeprefix("AREA[Phase]")
            result = [
                s
                for s in result
                if code in s["protocolSection"]["designModule"]["phases"]
            ]
        wanted_status = params.get("filter.overallStatus")
        if wanted_status:
            result = [
                s
                for s in result
                if s["protocolSection"]["statusModule"]["overallStatus"] == wanted_status
            ]
        return result

    async def search_studies(self, params: dict[str, Any]) -> StudyBatch:
        self.calls.append(dict(params))
        if len(self.calls) in self.fail_calls:
            raise DataSourceError("clinical_trials", "HTTP 503: unavailable", 503)

        matching = self._matching(params)
        token = params.get("pageToken")
        offset = int(token.removeprefix("cursor-")) if token else 0
        size = int(params.get("pageSize", 10))
        end = offset + size
        return StudyBatch(
            studies=matching[offset:end],
            total_count=len(matching) if params.get("countTotal") == "true" else None,
            next_page_token=f"cursor-{end}" if end < len(matching) else None,
        )

    async def get_study(self, nct_id: str) -> dict[str, Any]:
        for study in self.studies:
            if study["protocolSection"]["identificationModule"]["nctId"] == nct_id:
                return study
        raise TrialNotFoundError("clinical_trials", nct_id)

    async def count_studies(self, params: dict[str, Any]) -> int:
        self.count_calls.append(dict(params))
        key = (
            params.get("query.locn")
            or params.get("filter.overallStatus")
            or params.get("filter.advanced")
            or "total"
        )
        if key in self.count_failures:
            raise DataSourceError("clinical_trials", f"Timeout counting {key}")
        if key in self.counts:
            return self.counts[key]
        return len(self._matching(params))

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def get_field_sizes(self, field: str) -> list[dict[str, Any]]:
        if isinstance(self.field_sizes, Exception):
            raise self.field_sizes
        return self.field_sizes


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> QueryStateStore:
    return QueryStateStore(clock=clock, pagination_ttl=1800, filter_cache_ttl=300)


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def coordinator(registry: FakeRegistry, store: QueryStateStore) -> CursorPaginationCoordinator:
    return CursorPaginationCoordinator(registry, store)


@pytest.fixture
def filter_cache(registry: FakeRegistry, store: QueryStateStore) -> ClientSideFilterCache:
    return ClientSideFilterCache(registry, store, max_results=1000, max_pages=15)


@pytest.fixture
def trials_service(
    registry: FakeRegistry,
    store: QueryStateStore,
    coordinator: CursorPaginationCoordinator,
    filter_cache: ClientSideFilterCache,
) -> TrialsService:
    return TrialsService(registry, store, coordinator, filter_cache)


@pytest.fixture
def make_study():
    """Factory for raw v2 study records."""
    return build_study
