"""
Cursor pagination coordinator.

The registry pages with an opaque one-way cursor chain (nextPageToken),
not with page numbers. This module keeps, per filter context, the map
page number -> cursor observed so far and makes that chain look like
addressable pages, while refusing pages nobody has reached yet.

State per context:
  Empty               nothing fetched
  Known(max, cursors) page 1 is implicit; each successful fetch of the next
                      page that yields a cursor extends the map by one.
A different filter context is a different key, i.e. starts Empty.
"""

from __future__ import annotations

import logging
import math

from trialscope.data_sources.clinical_trials import ClinicalTrialsClient
from trialscope.models.model_clinical_trials import PageResult
from trialscope.services.normalizer import normalize_study
from trialscope.services.query_translator import (
    FilterContext,
    TrialQueryError,
    apply_phase_post_filter,
    build_search_params,
)
from trialscope.services.state_store import QueryStateStore

logger = logging.getLogger("trialscope.services.pagination")


class SequentialAccessRequired(TrialQueryError):
    """No cursor has been observed yet for the requested page."""

    code = "SEQUENTIAL_ACCESS_REQUIRED"


class PaginationState:
    """Cursor map and sticky total for one filter context.

    Writers only ever append: an existing page's cursor is never rewritten
    and no entry is added that would leave a gap below it.
    """

    def __init__(self) -> None:
        self._cursors: dict[int, str] = {}
        self._fetched: set[int] = set()
        self.total: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self._fetched

    @property
    def max_known_page(self) -> int:
        """Highest page that can currently be reached."""
        return max(self._cursors, default=1)

    @property
    def cursors(self) -> dict[int, str]:
        return dict(self._cursors)

    def cursor_for(self, page: int) -> str | None:
        return self._cursors.get(page)

    def is_reachable(self, page: int) -> bool:
        return page == 1 or page in self._cursors

    def record_cursor(self, page: int, cursor: str) -> bool:
        """Record `cursor` as the way to reach `page`; False if ignored."""
        if page <= 1 or page in self._cursors:
            return False
        if page != self.max_known_page + 1:
            return False
        self._cursors[page] = cursor
        return True

    def mark_fetched(self, page: int) -> None:
        self._fetched.add(page)

    def remember_total(self, total: int | None) -> None:
        """Keep the first total observed; later pages don't carry one."""
        if self.total is None and total is not None:
            self.total = total


def total_pages_for(total: int | None, page_size: int, page: int, has_next: bool) -> int:
    if total:
        return math.ceil(total / page_size)
    return page + 1 if has_next else page


class CursorPaginationCoordinator:
    """Serves server-filterable queries one upstream page at a time."""

    NAMESPACE = "pagination"

    def __init__(self, client: ClinicalTrialsClient, store: QueryStateStore):
        self.client = client
        self.store = store

    def _key(self, context: FilterContext) -> str:
        return context.cache_key(self.NAMESPACE)

    def state_for(self, context: FilterContext) -> PaginationState:
        return self.store.pagination.setdefault(self._key(context), PaginationState)

    def reset(self, context: FilterContext) -> None:
        """Discard the cursor map for `context` (back to Empty)."""
        self.store.pagination.pop(self._key(context))

    def _known_cursor(self, context: FilterContext, page: int) -> str | None:
        if page < 1:
            raise TrialQueryError(f"Invalid page number {page}", page=page)
        if page == 1:
            return None
        return self.state_for(context).cursor_for(page)

    def resolve_cursor(
        self, context: FilterContext, page: int, page_token: str | None = None
    ) -> str | None:
        """Cursor to send for `page`: none for page 1, else a known one.

        A token the caller got earlier as `next_page_token` is accepted when
        this process has no cursor of its own for the page. Such a token is
        only used for that request; it never enters the shared cursor map.
        """
        known = self._known_cursor(context, page)
        if page == 1 or known:
            return known
        if page_token:
            return page_token
        raise SequentialAccessRequired(
            f"Page {page} has not been reached yet; fetch page {page - 1} first",
            page=page,
            max_known_page=self.state_for(context).max_known_page,
        )

    async def fetch_page(
        self,
        context: FilterContext,
        page: int,
        page_token: str | None = None,
    ) -> PageResult:
        cursor = self.resolve_cursor(context, page, page_token)
        # Only responses to page 1 or to a stored cursor extend the map.
        observed = page == 1 or cursor == self._known_cursor(context, page)
        params = build_search_params(
            context, page=page, page_token=cursor, count_total=page == 1
        )

        batch = await self.client.search_studies(params)

        # Look the state up again: it may have expired while we awaited.
        state = self.state_for(context)
        if observed:
            if cursor:
                state.record_cursor(page, cursor)
            if batch.next_page_token:
                state.record_cursor(page + 1, batch.next_page_token)
            state.remember_total(batch.total_count)
            state.mark_fetched(page)
        else:
            logger.debug("Page %d served from a caller token; state untouched", page)

        trials = apply_phase_post_filter(
            [normalize_study(s) for s in batch.studies], context
        )
        has_next = batch.next_page_token is not None
        total = state.total

        logger.info(
            "Fetched page %d (%d trials, total=%s, next=%s)",
            page,
            len(trials),
            total,
            has_next,
        )

        return PageResult(
            trials=trials,
            page=page,
            limit=context.page_size,
            total=total,
            total_pages=total_pages_for(total, context.page_size, page, has_next),
            has_next_page=has_next,
            has_prev_page=page > 1,
            next_page_token=batch.next_page_token,
            prev_page_token=state.cursor_for(page - 1),
            source="upstream",
        )
