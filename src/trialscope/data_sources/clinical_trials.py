"""
ClinicalTrials.gov REST API v2 client.

Four methods:
  1. search_studies  -> one /studies page: raw records, total, next cursor
  2. get_study       -> one raw record by NCT ID
  3. count_studies   -> total count only (pageSize=1)
  4. get_field_sizes -> /stats/field/sizes for a field (e.g. Phase)
"""

from __future__ import annotations

import logging
from typing import Any

from trialscope.config import Settings, get_settings
from trialscope.constants import CLINICAL_TRIALS_MAX_PAGE_SIZE
from trialscope.data_sources.base_client import (
    BaseClient,
    ClientConfig,
    DataSourceError,
    RequestContext,
    TrialNotFoundError,
)
from trialscope.models.model_clinical_trials import StudyBatch

logger = logging.getLogger("trialscope.data_sources.clinical_trials")


class ClinicalTrialsClient(BaseClient):
    """Client for the ClinicalTrials.gov v2 API."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        super().__init__(config or ClientConfig.from_settings(settings))
        self.base_url = settings.api_base_url.rstrip("/")

    @property
    def _source_name(self) -> str:
        return "clinical_trials"

    def _context(self, method: str, params: dict[str, Any] | None = None) -> RequestContext:
        return RequestContext(source=self._source_name, method=method, params=params or {})

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def search_studies(self, params: dict[str, Any]) -> StudyBatch:
        """Fetch one page of /studies for already-translated params."""
        params = dict(params)
        params["pageSize"] = min(
            int(params.get("pageSize", CLINICAL_TRIALS_MAX_PAGE_SIZE)),
            CLINICAL_TRIALS_MAX_PAGE_SIZE,
        )
        logger.debug("search_studies params=%s", params)

        data = await self._rest_get(
            f"{self.base_url}/studies",
            params,
            context=self._context("search_studies", params),
        )
        if not isinstance(data, dict):
            raise DataSourceError(self._source_name, "Unexpected /studies response shape")

        return StudyBatch(
            studies=[s for s in data.get("studies") or [] if isinstance(s, dict)],
            total_count=data.get("totalCount"),
            next_page_token=data.get("nextPageToken") or None,
        )

    async def get_study(self, nct_id: str) -> dict[str, Any]:
        """Fetch one raw study. Raises TrialNotFoundError for unknown IDs."""
        try:
            data = await self._rest_get(
                f"{self.base_url}/studies/{nct_id}",
                {"format": "json"},
                context=self._context("get_study", {"nct_id": nct_id}),
            )
        except DataSourceError as e:
            if e.status_code == 404:
                raise TrialNotFoundError(self._source_name, nct_id) from e
            raise

        if not isinstance(data, dict) or not data.get("protocolSection"):
            raise TrialNotFoundError(self._source_name, nct_id)
        return data

    async def count_studies(self, params: dict[str, Any]) -> int:
        """Quick count without fetching full records."""
        params = {**params, "pageSize": 1, "countTotal": "true"}
        params.pop("pageToken", None)
        batch = await self.search_studies(params)
        return batch.total_count or 0

    async def get_field_sizes(self, field: str) -> list[dict[str, Any]]:
        """Value-count sizes for a list field, e.g. how many phases studies carry."""
        data = await self._rest_get(
            f"{self.base_url}/stats/field/sizes",
            {"fields": field},
            context=self._context("get_field_sizes", {"fields": field}),
        )
        if not isinstance(data, list):
            raise DataSourceError(
                self._source_name, f"Unexpected field sizes response for {field!r}"
            )
        return data
