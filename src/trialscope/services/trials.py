"""
Trials service: the entry point the HTTP layer and CLI call.

Routes each list query either to the cursor pagination coordinator (the
registry can filter it) or to the client-side filter cache (it cannot),
and guards per-channel ordering so a slow stale response is never applied.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any

from trialscope.config import Settings, get_settings
from trialscope.constants import ANALYTICS_SAMPLE_SIZE, CLINICAL_TRIALS_MAX_PAGE_SIZE
from trialscope.data_sources.base_client import DataSourceError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.models.model_clinical_trials import PageResult, TotalCount, Trial
from trialscope.services.filter_cache import PREDICATES, ClientSideFilterCache
from trialscope.services.normalizer import normalize_study
from trialscope.services.pagination import CursorPaginationCoordinator
from trialscope.services.query_translator import FilterContext, build_search_params
from trialscope.services.state_store import QueryStateStore
from trialscope.utils.cache import Clock

logger = logging.getLogger("trialscope.services.trials")

# Sampling strategies for analytics fallbacks, tried in order
ANALYTICS_SAMPLE_STRATEGIES: tuple[dict[str, Any], ...] = (
    {"filter.overallStatus": "RECRUITING"},
    {"query.cond": "cancer"},
    {"filter.advanced": "AREA[Phase]PHASE3"},
    {},
)


class TrialsService:
    """List, detail and count queries over the registry."""

    def __init__(
        self,
        client: ClinicalTrialsClient,
        store: QueryStateStore,
        coordinator: CursorPaginationCoordinator,
        filter_cache: ClientSideFilterCache,
    ):
        self.client = client
        self.store = store
        self.coordinator = coordinator
        self.filter_cache = filter_cache

    @classmethod
    def create(
        cls,
        client: ClinicalTrialsClient,
        settings: Settings | None = None,
        clock: Clock = time.monotonic,
    ) -> "TrialsService":
        settings = settings or get_settings()
        store = QueryStateStore.from_settings(settings, clock=clock)
        return cls(
            client,
            store,
            CursorPaginationCoordinator(client, store),
            ClientSideFilterCache.from_settings(client, store, settings),
        )

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    async def get_trials(
        self,
        context: FilterContext,
        page: int = 1,
        page_token: str | None = None,
        channel: str | None = None,
    ) -> PageResult:
        """One page of trials for `context`.

        With a `channel`, raises StaleRequestError if a newer request on the
        same channel began while this one was in flight.
        """
        seq = self.store.sequencer.begin(channel) if channel else None
        self.store.purge_expired()

        phase = context.phase_filter
        if phase is not None and not phase.server_filterable:
            result = await self.filter_cache.get_page(context, phase.predicate, page)
        else:
            result = await self.coordinator.fetch_page(context, page, page_token)

        if channel and seq is not None:
            self.store.sequencer.check(channel, seq)
        return result

    # ------------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------------

    async def get_trial(self, nct_id: str) -> Trial:
        """Normalized trial by NCT ID; raises TrialNotFoundError."""
        raw = await self.client.get_study(nct_id.strip().upper())
        return normalize_study(raw)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    async def get_total_count(self, context: FilterContext) -> TotalCount:
        """How many trials match `context`, labeled exact / lower bound / estimate."""
        phase = context.phase_filter
        if phase is None or phase.server_filterable:
            value = await self.client.count_studies(build_search_params(context))
            return TotalCount(value=value, kind="exact")

        entry = self.filter_cache.peek(context, phase.predicate)
        if entry is not None:
            return TotalCount(
                value=entry.total,
                kind="lower_bound" if entry.is_lower_bound else "exact",
                upstream_total=entry.upstream_total,
            )
        return await self.estimate_total(context, phase.predicate)

    async def estimate_total(self, context: FilterContext, predicate: str) -> TotalCount:
        """Extrapolate a client-side predicate's count from one sampled page.

        The match ratio in the first page is multiplied by the registry's
        total for the rest of the filters. This is a statistical estimate,
        not a count, and is labeled as such.
        """
        params = build_search_params(
            context,
            page_size=CLINICAL_TRIALS_MAX_PAGE_SIZE,
            count_total=True,
            include_phase=False,
        )
        batch = await self.client.search_studies(params)
        matches = sum(
            1 for s in batch.studies if PREDICATES[predicate](normalize_study(s))
        )
        sample_size = len(batch.studies)

        # The sample was the whole result set
        if batch.next_page_token is None or not sample_size:
            return TotalCount(
                value=matches, kind="exact", upstream_total=batch.total_count
            )

        upstream_total = batch.total_count or 0
        estimate = math.floor(matches / sample_size * upstream_total + 0.5)
        logger.info(
            "%s count estimate: %d/%d sampled, upstream total %d -> %d",
            predicate,
            matches,
            sample_size,
            upstream_total,
            estimate,
        )
        return TotalCount(
            value=estimate,
            kind="estimate",
            sample_size=sample_size,
            upstream_total=upstream_total,
        )

    # ------------------------------------------------------------------
    # Analytics sample
    # ------------------------------------------------------------------

    async def get_trials_for_analytics(
        self, limit: int = ANALYTICS_SAMPLE_SIZE
    ) -> list[Trial]:
        """A sample of up to `limit` trials from the first strategy that yields any."""
        for i, strategy in enumerate(ANALYTICS_SAMPLE_STRATEGIES, start=1):
            try:
                trials = await self._collect(strategy, limit)
            except DataSourceError as e:
                logger.warning("Analytics sample strategy %d failed: %s", i, e)
                continue
            if trials:
                logger.info("Analytics sample strategy %d yielded %d trials", i, len(trials))
                return trials
            logger.info("Analytics sample strategy %d returned no results", i)

        logger.warning("All analytics sample strategies failed, returning empty sample")
        return []

    async def _collect(self, strategy: dict[str, Any], limit: int) -> list[Trial]:
        trials: list[Trial] = []
        page_token: str | None = None
        while len(trials) < limit:
            params: dict[str, Any] = {
                "format": "json",
                "pageSize": min(limit - len(trials), CLINICAL_TRIALS_MAX_PAGE_SIZE),
                **strategy,
            }
            if page_token:
                params["pageToken"] = page_token
            batch = await self.client.search_studies(params)
            trials.extend(normalize_study(s) for s in batch.studies)
            page_token = batch.next_page_token
            if not page_token or not batch.studies:
                break
        return trials[:limit]
