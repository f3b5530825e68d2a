"""
Process-wide query state.

One QueryStateStore is built per process and injected into the pagination
coordinator and the client-side filter cache. Tests pass their own clock to
drive TTL expiry deterministically.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from trialscope.config import Settings
from trialscope.constants import FILTER_CACHE_TTL, PAGINATION_STATE_TTL
from trialscope.models.model_clinical_trials import CacheEntry
from trialscope.services.sequencer import RequestSequencer
from trialscope.utils.cache import Clock, TTLCache

if TYPE_CHECKING:
    from trialscope.services.pagination import PaginationState


class QueryStateStore:
    """Cursor maps, filter-cache entries, in-flight cache builds and sequencing."""

    def __init__(
        self,
        clock: Clock = time.monotonic,
        pagination_ttl: float = PAGINATION_STATE_TTL,
        filter_cache_ttl: float = FILTER_CACHE_TTL,
    ):
        self.clock = clock
        self.pagination: TTLCache[PaginationState] = TTLCache(
            pagination_ttl, clock, name="pagination"
        )
        self.filter_cache: TTLCache[CacheEntry] = TTLCache(
            filter_cache_ttl, clock, name="filter_cache"
        )
        self.inflight: dict[str, asyncio.Task[CacheEntry]] = {}
        self.sequencer = RequestSequencer(pagination_ttl, clock)

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.monotonic) -> "QueryStateStore":
        return cls(
            clock=clock,
            pagination_ttl=settings.pagination_state_ttl_seconds,
            filter_cache_ttl=settings.filter_cache_ttl_seconds,
        )

    def purge_expired(self) -> int:
        return self.pagination.purge_expired() + self.filter_cache.purge_expired()
