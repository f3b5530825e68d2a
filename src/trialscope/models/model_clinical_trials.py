"""
Pydantic models for ClinicalTrials.gov data.

These are the data contracts between the services and the HTTP layer.
Nothing past the normalizer ever sees a raw API response.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from trialscope.constants import NOT_SPECIFIED, UNKNOWN_STATUS

# ------------------------------------------------------------------
# Upstream batch
# ------------------------------------------------------------------


class StudyBatch(BaseModel):
    """One /studies response: raw records plus the cursor protocol fields."""

    studies: list[dict[str, Any]] = []
    total_count: int | None = None
    next_page_token: str | None = None


# ------------------------------------------------------------------
# Trial-level models
# ------------------------------------------------------------------


class Location(BaseModel):
    """A single trial site."""

    model_config = ConfigDict(frozen=True)

    facility: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip: str = ""


class Trial(BaseModel):
    """A normalized clinical trial record."""

    model_config = ConfigDict(frozen=True)

    nct_id: str
    title: str = NOT_SPECIFIED
    official_title: str = NOT_SPECIFIED
    status: str = UNKNOWN_STATUS  # upstream code, e.g. "RECRUITING"
    phase: str  # display string, e.g. "Phase 1, Phase 2" or "N/A"
    phases: tuple[str, ...] = ()  # structured labels, e.g. ("Phase 1", "Phase 2")
    condition: str = NOT_SPECIFIED
    conditions: tuple[str, ...] = ()
    country: str = NOT_SPECIFIED
    countries: tuple[str, ...] = ()
    sponsor: str = NOT_SPECIFIED
    enrollment_count: int = 0
    study_type: str = NOT_SPECIFIED
    start_date: str | None = None
    completion_date: str | None = None
    last_update_date: str | None = None

    # Detail view
    brief_summary: str = NOT_SPECIFIED
    detailed_description: str = NOT_SPECIFIED
    locations: tuple[Location, ...] = ()
    eligibility_criteria: str = NOT_SPECIFIED
    minimum_age: str = NOT_SPECIFIED
    maximum_age: str = NOT_SPECIFIED
    sex: str = "ALL"


# ------------------------------------------------------------------
# Paging contract
# ------------------------------------------------------------------


class PageResult(BaseModel):
    """Uniform page contract returned for every list query."""

    trials: list[Trial] = []
    page: int
    limit: int
    total: int | None = None
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page_token: str | None = None
    prev_page_token: str | None = None
    # True when `total` counts a truncated client-side scan.
    # Single-phase queries keep the registry total, which also counts the
    # multi-phase trials the post-filter drops, so `total` over-counts there.
    total_is_lower_bound: bool = False
    source: Literal["upstream", "client_filter"] = "upstream"


class TotalCount(BaseModel):
    """A count for a filter context, labeled with how it was obtained."""

    value: int
    kind: Literal["exact", "lower_bound", "estimate"] = "exact"
    sample_size: int | None = None
    upstream_total: int | None = None


# ------------------------------------------------------------------
# Client-side filter cache
# ------------------------------------------------------------------


class CacheEntry(BaseModel):
    """Accumulated matches for one (predicate, filter context) scan."""

    model_config = ConfigDict(frozen=True)

    predicate: str
    key: str
    trials: tuple[Trial, ...] = ()
    created_at: float
    pages_scanned: int = 0
    stop_reason: Literal[
        "exhausted", "result_ceiling", "page_ceiling", "upstream_error"
    ] = "exhausted"
    upstream_total: int | None = None
    errors: tuple[str, ...] = Field(default=())

    @property
    def is_lower_bound(self) -> bool:
        """True when the scan stopped before the upstream ran out of pages."""
        return self.stop_reason != "exhausted"

    @property
    def total(self) -> int:
        return len(self.trials)
