"""
Aggregate analytics over the registry.

Per-item counts (one upstream call per country or status) run
concurrently. A failed call counts as zero and is recorded in the
result's `errors`; it never fails the whole breakdown. When every call
fails, the breakdown falls back to counting over a sampled set of trials.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Iterable

from trialscope.constants import (
    ANALYTICS_COUNTRIES,
    ANALYTICS_TOP_COUNTRIES,
    COUNTRY_DESCRIPTIONS,
    COUNTRY_FLAGS,
    DEFAULT_COUNTRY_FLAG,
    NOT_APPLICABLE_PHASE,
    OVERALL_STATUSES,
    SINGLE_PHASES,
    STATUS_DESCRIPTIONS,
    STATUS_DISPLAY_NAMES,
)
from trialscope.data_sources.base_client import DataSourceError, PartialResult
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.models.model_analytics import (
    CountryStat,
    PhaseDistribution,
    PhaseDistributionRow,
    PhaseStat,
    StatusStat,
)
from trialscope.services.normalizer import is_multi_phase
from trialscope.services.query_translator import FilterContext, build_search_params
from trialscope.services.trials import TrialsService

logger = logging.getLogger("trialscope.services.analytics")

PHASE_ORDER: tuple[str, ...] = (*SINGLE_PHASES, NOT_APPLICABLE_PHASE)


def _percentage(part: int, whole: int) -> str:
    return f"{part / whole * 100:.1f}" if whole > 0 else "0.0"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnalyticsService:
    """Country, status, phase and phase-distribution breakdowns."""

    def __init__(self, client: ClinicalTrialsClient, trials_service: TrialsService):
        self.client = client
        self.trials_service = trials_service

    # ------------------------------------------------------------------
    # Concurrent per-item counting
    # ------------------------------------------------------------------

    async def count_each(
        self,
        items: Iterable[str],
        context_for: Callable[[str], FilterContext],
    ) -> PartialResult:
        """Count every item concurrently; failures become zero.

        Returns a PartialResult whose data is {item: count} in input order.
        """
        items = list(items)
        results = await asyncio.gather(
            *(
                self.client.count_studies(build_search_params(context_for(item)))
                for item in items
            ),
            return_exceptions=True,
        )

        counts: dict[str, int] = {}
        errors: list[str] = []
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.warning("Count for %s failed: %s", item, result)
                errors.append(f"{item}: {result}")
                counts[item] = 0
            elif isinstance(result, BaseException):
                raise result
            else:
                counts[item] = result

        return PartialResult(data=counts, is_complete=not errors, errors=errors)

    # ------------------------------------------------------------------
    # Countries
    # ------------------------------------------------------------------

    async def get_country_analytics(self) -> PartialResult:
        logger.info("Fetching country analytics")
        counted = await self.count_each(
            ANALYTICS_COUNTRIES, lambda c: FilterContext(countries=[c])
        )
        if len(counted.errors) == len(ANALYTICS_COUNTRIES):
            return await self._country_fallback(counted.errors)

        ranked = sorted(
            ((c, n) for c, n in counted.data.items() if n > 0),
            key=lambda item: item[1],
            reverse=True,
        )[:ANALYTICS_TOP_COUNTRIES]
        total = sum(n for _, n in ranked)

        rows = [
            CountryStat(
                name=country,
                value=count,
                percentage=_percentage(count, total),
                flag=COUNTRY_FLAGS.get(country, DEFAULT_COUNTRY_FLAG),
                description=COUNTRY_DESCRIPTIONS.get(
                    country, "Active in clinical research"
                ),
            )
            for country, count in ranked
        ]
        logger.info("Country analytics: top %d countries, %d studies", len(rows), total)
        return PartialResult(data=rows, is_complete=counted.is_complete, errors=counted.errors)

    async def _country_fallback(self, errors: list[str]) -> PartialResult:
        trials = await self.trials_service.get_trials_for_analytics()
        counts: Counter[str] = Counter()
        for trial in trials:
            counts.update(trial.countries)

        rows = [
            CountryStat(
                name=country,
                value=count,
                percentage=_percentage(count, len(trials)),
                flag=COUNTRY_FLAGS.get(country, DEFAULT_COUNTRY_FLAG),
                description="Based on sample data",
            )
            for country, count in counts.most_common(ANALYTICS_TOP_COUNTRIES)
        ]
        return PartialResult(data=rows, is_complete=False, errors=errors, fallback=True)

    # ------------------------------------------------------------------
    # Statuses
    # ------------------------------------------------------------------

    async def get_status_analytics(self) -> PartialResult:
        logger.info("Fetching status analytics")
        counted = await self.count_each(
            OVERALL_STATUSES, lambda s: FilterContext(status=s)
        )
        if len(counted.errors) == len(OVERALL_STATUSES):
            return await self._status_fallback(counted.errors)

        total = sum(counted.data.values())
        rows = [
            StatusStat(
                name=STATUS_DISPLAY_NAMES.get(status, status),
                value=count,
                percentage=_percentage(count, total),
                raw_status=status,
                description=STATUS_DESCRIPTIONS.get(status, "No description available"),
            )
            for status, count in counted.data.items()
            if count > 0
        ]
        rows.sort(key=lambda r: r.value, reverse=True)
        return PartialResult(data=rows, is_complete=counted.is_complete, errors=counted.errors)

    async def _status_fallback(self, errors: list[str]) -> PartialResult:
        trials = await self.trials_service.get_trials_for_analytics()
        counts = Counter(t.status for t in trials)
        rows = [
            StatusStat(
                name=STATUS_DISPLAY_NAMES.get(status, status),
                value=count,
                percentage=_percentage(count, len(trials)),
                raw_status=status,
                description="Based on sample data",
            )
            for status, count in counts.most_common()
        ]
        return PartialResult(data=rows, is_complete=False, errors=errors, fallback=True)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def get_phase_analytics(self) -> PartialResult:
        """Total study count and per single-phase counts (AREA[Phase] filter)."""
        try:
            total = await self.client.count_studies(build_search_params(FilterContext()))
        except DataSourceError as e:
            logger.warning("Total study count failed, using sample: %s", e)
            return await self._phase_fallback([f"total: {e}"])

        counted = await self.count_each(SINGLE_PHASES, lambda p: FilterContext(phase=p))
        rows = [
            PhaseStat(
                name=phase,
                value=count,
                percentage=_percentage(count, total),
            )
            for phase, count in counted.data.items()
            if count > 0
        ]
        rows.append(
            PhaseStat(
                name="Total Studies",
                value=total,
                percentage="100.0",
                type="total",
                description="All studies in the database",
            )
        )
        return PartialResult(data=rows, is_complete=counted.is_complete, errors=counted.errors)

    async def _phase_fallback(self, errors: list[str]) -> PartialResult:
        trials = await self.trials_service.get_trials_for_analytics()
        counts = Counter(t.phases[0] if t.phases else NOT_APPLICABLE_PHASE for t in trials)

        def _order(item: tuple[str, int]) -> tuple[int, int]:
            name, value = item
            rank = PHASE_ORDER.index(name) if name in PHASE_ORDER else len(PHASE_ORDER)
            return rank, -value

        rows = [
            PhaseStat(name=name, value=value, percentage=_percentage(value, len(trials)))
            for name, value in sorted(counts.items(), key=_order)
        ]
        return PartialResult(data=rows, is_complete=False, errors=errors, fallback=True)

    # ------------------------------------------------------------------
    # Phase distribution
    # ------------------------------------------------------------------

    async def get_phase_distribution(self) -> PhaseDistribution:
        """How many studies list one, two, ... phases, from the stats API."""
        try:
            data = await self.client.get_field_sizes("Phase")
        except DataSourceError as e:
            logger.warning("Phase field sizes unavailable, using sample: %s", e)
            return await self._phase_distribution_fallback()

        stats = data[0] if data and isinstance(data[0], dict) else {}
        top_sizes = [
            s for s in stats.get("topSizes") or [] if isinstance(s, dict) and "size" in s
        ]
        if not top_sizes:
            logger.warning("Phase field sizes response had no topSizes")
            return await self._phase_distribution_fallback()

        total = sum(int(s.get("studiesCount") or 0) for s in top_sizes)
        rows = []
        for item in top_sizes:
            size = item["size"]
            count = int(item.get("studiesCount") or 0)
            rows.append(
                PhaseDistributionRow(
                    name="Single Phase Studies" if size == 1 else f"{size} Phase Studies",
                    value=count,
                    percentage=_percentage(count, total),
                    description=(
                        "Studies with exactly one phase designation"
                        if size == 1
                        else f"Studies spanning {size} phases"
                    ),
                )
            )

        return PhaseDistribution(
            distribution=rows,
            total_studies=total,
            source="ClinicalTrials.gov Stats API",
            last_updated=_now_iso(),
            min_size=stats.get("minSize"),
            max_size=stats.get("maxSize"),
            unique_sizes_count=stats.get("uniqueSizesCount"),
        )

    async def _phase_distribution_fallback(self) -> PhaseDistribution:
        trials = await self.trials_service.get_trials_for_analytics()
        multi = sum(1 for t in trials if is_multi_phase(t))
        single = len(trials) - multi
        total = len(trials)
        return PhaseDistribution(
            distribution=[
                PhaseDistributionRow(
                    name="Single Phase Studies",
                    value=single,
                    percentage=_percentage(single, total),
                    description="Studies with at most one phase designation",
                ),
                PhaseDistributionRow(
                    name="Multi-Phase Studies",
                    value=multi,
                    percentage=_percentage(multi, total),
                    description="Studies spanning more than one phase",
                ),
            ],
            total_studies=total,
            source="Sampled trial data (fallback)",
            last_updated=_now_iso(),
        )
