"""
Client-side filter cache.

For predicates the registry cannot express (phase "N/A", "Multi-Phase"),
scan upstream pages sequentially, keep the matching trials, and serve
page-number slices from the accumulated list.

The scan is bounded by a result ceiling and a page ceiling. When either
stops it early, the reported total is a lower bound on the true count;
PageResult.total_is_lower_bound says so.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable

from trialscope.config import Settings
from trialscope.constants import (
    CLINICAL_TRIALS_MAX_PAGE_SIZE,
    FILTER_CACHE_MAX_PAGES,
    FILTER_CACHE_MAX_RESULTS,
)
from trialscope.data_sources.base_client import DataSourceError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.models.model_clinical_trials import CacheEntry, PageResult, Trial
from trialscope.services.normalizer import (
    is_multi_phase,
    is_not_applicable_phase,
    normalize_study,
)
from trialscope.services.query_translator import (
    FilterContext,
    TrialQueryError,
    build_search_params,
)
from trialscope.services.state_store import QueryStateStore

logger = logging.getLogger("trialscope.services.filter_cache")

PREDICATES: dict[str, Callable[[Trial], bool]] = {
    "not_applicable": is_not_applicable_phase,
    "multi_phase": is_multi_phase,
}


class ClientSideFilterCache:
    """Builds, expires and slices locally-filtered result sets."""

    NAMESPACE = "client_filter"

    def __init__(
        self,
        client: ClinicalTrialsClient,
        store: QueryStateStore,
        *,
        max_results: int = FILTER_CACHE_MAX_RESULTS,
        max_pages: int = FILTER_CACHE_MAX_PAGES,
        scan_page_size: int = CLINICAL_TRIALS_MAX_PAGE_SIZE,
    ):
        self.client = client
        self.store = store
        self.max_results = max_results
        self.max_pages = max_pages
        self.scan_page_size = scan_page_size

    @classmethod
    def from_settings(
        cls, client: ClinicalTrialsClient, store: QueryStateStore, settings: Settings
    ) -> "ClientSideFilterCache":
        return cls(
            client,
            store,
            max_results=settings.filter_cache_max_results,
            max_pages=settings.filter_cache_max_pages,
            scan_page_size=settings.max_page_size,
        )

    def _key(self, context: FilterContext, predicate: str) -> str:
        # Page size only affects slicing, so all page sizes share one scan.
        return context.cache_key(
            f"{self.NAMESPACE}:{predicate}", include_page_size=False
        )

    def peek(self, context: FilterContext, predicate: str) -> CacheEntry | None:
        """Live entry for (predicate, context) without triggering a scan."""
        return self.store.filter_cache.get(self._key(context, predicate))

    async def ensure_cache(self, context: FilterContext, predicate: str) -> CacheEntry:
        """Return a live entry, building it at most once across concurrent callers."""
        if predicate not in PREDICATES:
            raise TrialQueryError(
                f"Unknown client-side predicate {predicate!r}", predicate=predicate
            )

        key = self._key(context, predicate)
        entry = self.store.filter_cache.get(key)
        if entry is not None:
            return entry

        task = self.store.inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._build(context, predicate, key))
            self.store.inflight[key] = task

            def _forget(done: asyncio.Task[CacheEntry]) -> None:
                if self.store.inflight.get(key) is done:
                    del self.store.inflight[key]

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight %s scan %s", predicate, key[:12])

        # One caller going away must not cancel the scan for the others.
        return await asyncio.shield(task)

    async def _build(self, context: FilterContext, predicate: str, key: str) -> CacheEntry:
        matches = PREDICATES[predicate]
        accumulated: list[Trial] = []
        errors: list[str] = []
        page_token: str | None = None
        upstream_total: int | None = None
        pages = 0
        stop_reason = "exhausted"

        logger.info("Building %s cache for %s", predicate, key[:12])

        while True:
            params = build_search_params(
                context,
                page=pages + 1,
                page_token=page_token,
                count_total=page_token is None,
                page_size=self.scan_page_size,
                include_phase=False,
            )
            try:
                batch = await self.client.search_studies(params)
            except DataSourceError as e:
                if pages == 0:
                    raise
                logger.warning(
                    "Stopping %s scan after page %d: %s", predicate, pages, e
                )
                errors.append(str(e))
                stop_reason = "upstream_error"
                break

            pages += 1
            if upstream_total is None:
                upstream_total = batch.total_count

            page_matches = [
                t for t in (normalize_study(s) for s in batch.studies) if matches(t)
            ]
            accumulated.extend(page_matches)
            page_token = batch.next_page_token

            logger.debug(
                "Scanned page %d: %d %s matches (total so far %d)",
                pages,
                len(page_matches),
                predicate,
                len(accumulated),
            )

            if not batch.studies or not page_token:
                stop_reason = "exhausted"
                break
            if len(accumulated) >= self.max_results:
                stop_reason = "result_ceiling"
                break
            if pages >= self.max_pages:
                stop_reason = "page_ceiling"
                break

        entry = CacheEntry(
            predicate=predicate,
            key=key,
            trials=tuple(accumulated),
            created_at=self.store.clock(),
            pages_scanned=pages,
            stop_reason=stop_reason,
            upstream_total=upstream_total,
            errors=tuple(errors),
        )
        # Replace whole; readers never see a half-built accumulator.
        self.store.filter_cache.set(key, entry)

        logger.info(
            "Cache built for %s: %d trials from %d pages (%s)",
            predicate,
            entry.total,
            pages,
            stop_reason,
        )
        return entry

    async def get_page(
        self,
        context: FilterContext,
        predicate: str,
        page: int,
        page_size: int | None = None,
    ) -> PageResult:
        """Slice page `page` out of the accumulated matches."""
        if page < 1:
            raise TrialQueryError(f"Invalid page number {page}", page=page)

        entry = await self.ensure_cache(context, predicate)
        size = page_size or context.page_size
        start = (page - 1) * size
        total = entry.total
        total_pages = max(1, math.ceil(total / size))

        return PageResult(
            trials=list(entry.trials[start : start + size]),
            page=page,
            limit=size,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
            total_is_lower_bound=entry.is_lower_bound,
            source="client_filter",
        )
