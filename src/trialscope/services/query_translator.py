"""
Query translator: user filters -> one ClinicalTrials.gov /studies request.

Also owns the phase policy. A single phase ("Phase 2") is sent upstream as
an AREA[Phase] advanced filter, but the registry matches any trial whose
phase *set* contains it, so results must be post-filtered to exact
single-phase matches. "N/A" and "Multi-Phase" have no upstream filter at
all and are served by the client-side filter cache instead.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, field_validator

from trialscope.constants import (
    CLINICAL_TRIALS_MAX_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    MULTI_PHASE,
    NOT_APPLICABLE_ALIASES,
    NOT_APPLICABLE_PHASE,
    PHASE_LABELS,
)
from trialscope.models.model_clinical_trials import Trial
from trialscope.services.normalizer import has_exact_phase
from trialscope.utils.cache import cache_key

# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


class TrialQueryError(Exception):
    """A query the caller can fix; carries a stable machine-readable code."""

    code = "INVALID_QUERY"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


class PageTokenRequired(TrialQueryError):
    """Page > 1 was requested without a continuation token."""

    code = "PAGE_TOKEN_REQUIRED"


class UnsupportedPhaseError(TrialQueryError):
    code = "INVALID_PHASE"


# ------------------------------------------------------------------
# Phase filter
# ------------------------------------------------------------------

# Lower-cased user spellings -> v2 phase code
_PHASE_CODES: dict[str, str] = {}
for _code, _label in PHASE_LABELS.items():
    if _label != NOT_APPLICABLE_PHASE:
        _PHASE_CODES[_label.lower()] = _code
        _PHASE_CODES[_code.lower()] = _code

_MULTI_PHASE_ALIASES = frozenset({"multi-phase", "multi phase", "multiphase"})


class PhaseFilter(BaseModel):
    """A parsed phase selector."""

    model_config = ConfigDict(frozen=True)

    label: str  # "Phase 2", "N/A", "Multi-Phase"
    code: str | None = None  # "PHASE2" for single phases
    predicate: str | None = None  # client-side predicate name

    @property
    def server_filterable(self) -> bool:
        return self.code is not None


def parse_phase(value: str | None) -> PhaseFilter | None:
    """Parse a user phase selector; None means "any phase"."""
    if value is None or not value.strip():
        return None
    lowered = value.strip().lower()
    if lowered in NOT_APPLICABLE_ALIASES:
        return PhaseFilter(label=NOT_APPLICABLE_PHASE, predicate="not_applicable")
    if lowered in _MULTI_PHASE_ALIASES:
        return PhaseFilter(label=MULTI_PHASE, predicate="multi_phase")
    code = _PHASE_CODES.get(lowered)
    if code is None:
        raise UnsupportedPhaseError(f"Unsupported phase filter: {value!r}", phase=value)
    return PhaseFilter(label=PHASE_LABELS[code], code=code)


# ------------------------------------------------------------------
# Filter context
# ------------------------------------------------------------------


def _normalize_selector(values: Iterable[str] | str | None) -> tuple[str, ...]:
    """Strip, drop blanks and duplicates, and sort case-insensitively.

    Sorting makes contexts that differ only in selector order equal, so they
    share pagination state and filter-cache entries.
    """
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    unique: dict[str, str] = {}
    for value in values:
        cleaned = value.strip() if isinstance(value, str) else ""
        if cleaned:
            unique.setdefault(cleaned.casefold(), cleaned)
    return tuple(unique[k] for k in sorted(unique))


class FilterContext(BaseModel):
    """The user-chosen filters identifying one logical query (no page position)."""

    model_config = ConfigDict(frozen=True)

    search_term: str | None = None
    conditions: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    status: str | None = None
    phase: str | None = None
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("conditions", "countries", mode="before")
    @classmethod
    def _sorted_selector(cls, value: Any) -> tuple[str, ...]:
        return _normalize_selector(value)

    @field_validator("search_term", "status", "phase", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("phase")
    @classmethod
    def _canonical_phase(cls, value: str | None) -> str | None:
        parsed = parse_phase(value)
        return parsed.label if parsed else None

    @field_validator("status")
    @classmethod
    def _canonical_status(cls, value: str | None) -> str | None:
        return value.upper() if value else None

    @field_validator("page_size")
    @classmethod
    def _bounded_page_size(cls, value: int) -> int:
        """The registry serves at most CLINICAL_TRIALS_MAX_PAGE_SIZE per page."""
        if value < 1:
            raise ValueError("page_size must be >= 1")
        return min(value, CLINICAL_TRIALS_MAX_PAGE_SIZE)

    @property
    def phase_filter(self) -> PhaseFilter | None:
        return parse_phase(self.phase)

    def cache_key(self, namespace: str, *, include_page_size: bool = True) -> str:
        """Deterministic key for this context under `namespace`."""
        exclude = None if include_page_size else {"page_size"}
        return cache_key(namespace, self.model_dump(mode="json", exclude=exclude))


# ------------------------------------------------------------------
# Parameter building
# ------------------------------------------------------------------


def encode_location(country: str) -> str:
    """Registry token separator: internal whitespace becomes '+'."""
    return "+".join(country.split())


def build_search_params(
    context: FilterContext,
    *,
    page: int = 1,
    page_token: str | None = None,
    count_total: bool | None = None,
    page_size: int | None = None,
    include_phase: bool = True,
) -> dict[str, Any]:
    """Build /studies query parameters for one page of `context`.

    Raises PageTokenRequired for page > 1 without a token: the registry only
    supports cursor traversal, so a page number alone cannot be resolved.
    """
    if page > 1 and not page_token:
        raise PageTokenRequired(
            f"Page {page} requires a continuation token; navigate sequentially",
            page=page,
        )

    size = page_size if page_size is not None else context.page_size
    params: dict[str, Any] = {
        "format": "json",
        "pageSize": min(size, CLINICAL_TRIALS_MAX_PAGE_SIZE),
    }

    if count_total is None:
        count_total = page_token is None
    if count_total:
        params["countTotal"] = "true"
    if page_token:
        params["pageToken"] = page_token

    if context.search_term:
        params["query.term"] = context.search_term
    if context.conditions:
        params["query.cond"] = " OR ".join(context.conditions)
    if context.countries:
        params["query.locn"] = " OR ".join(encode_location(c) for c in context.countries)
    if context.status:
        params["filter.overallStatus"] = context.status

    phase = context.phase_filter
    if include_phase and phase is not None and phase.server_filterable:
        params["filter.advanced"] = f"AREA[Phase]{phase.code}"

    return params


def apply_phase_post_filter(trials: list[Trial], context: FilterContext) -> list[Trial]:
    """Keep only exact single-phase matches when a single phase was requested."""
    phase = context.phase_filter
    if phase is None or not phase.server_filterable:
        return trials
    return [t for t in trials if has_exact_phase(t, phase.label)]
