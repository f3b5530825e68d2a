"""Unit tests for ClinicalTrialsClient (HTTP layer mocked)."""

from unittest.mock import AsyncMock, patch

import pytest

from trialscope.config import Settings
from trialscope.data_sources.base_client import DataSourceError, TrialNotFoundError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient


@pytest.fixture
def client() -> ClinicalTrialsClient:
    return ClinicalTrialsClient(settings=Settings(api_base_url="https://registry.test/api/v2/"))


@pytest.mark.asyncio
class TestSearchStudies:
    async def test_maps_cursor_protocol_fields(self, client, make_study):
        response = {
            "studies": [make_study("NCT00000001"), "garbage"],
            "totalCount": 450,
            "nextPageToken": "abc",
        }
        with patch.object(
            client, "_rest_get", new_callable=AsyncMock, return_value=response
        ) as mock_get:
            batch = await client.search_studies({"pageSize": 10, "countTotal": "true"})

        assert len(batch.studies) == 1
        assert batch.total_count == 450
        assert batch.next_page_token == "abc"
        url, params = mock_get.call_args.args
        assert url == "https://registry.test/api/v2/studies"
        assert params["pageSize"] == 10

    async def test_clamps_page_size_to_registry_maximum(self, client):
        with patch.object(
            client, "_rest_get", new_callable=AsyncMock, return_value={"studies": []}
        ) as mock_get:
            await client.search_studies({"pageSize": 500})

        assert mock_get.call_args.args[1]["pageSize"] == 100

    async def test_empty_next_token_means_last_page(self, client):
        with patch.object(
            client,
            "_rest_get",
            new_callable=AsyncMock,
            return_value={"studies": [], "nextPageToken": ""},
        ):
            batch = await client.search_studies({})

        assert batch.next_page_token is None
        assert batch.total_count is None

    async def test_unexpected_shape_raises(self, client):
        with patch.object(client, "_rest_get", new_callable=AsyncMock, return_value=[]):
            with pytest.raises(DataSourceError, match="Unexpected"):
                await client.search_studies({})


@pytest.mark.asyncio
class TestGetStudy:
    async def test_returns_raw_record(self, client, make_study):
        study = make_study("NCT01234567")
        with patch.object(client, "_rest_get", new_callable=AsyncMock, return_value=study):
            assert await client.get_study("NCT01234567") == study

    async def test_404_becomes_trial_not_found(self, client):
        with patch.object(
            client,
            "_rest_get",
            new_callable=AsyncMock,
            side_effect=DataSourceError("clinical_trials", "HTTP 404: nope", 404),
        ):
            with pytest.raises(TrialNotFoundError) as exc_info:
                await client.get_study("NCT09999999")

        assert exc_info.value.nct_id == "NCT09999999"

    async def test_record_without_protocol_section_is_not_found(self, client):
        with patch.object(client, "_rest_get", new_callable=AsyncMock, return_value={}):
            with pytest.raises(TrialNotFoundError):
                await client.get_study("NCT09999999")

    async def test_other_errors_propagate(self, client):
        with patch.object(
            client,
            "_rest_get",
            new_callable=AsyncMock,
            side_effect=DataSourceError("clinical_trials", "HTTP 503: down", 503),
        ):
            with pytest.raises(DataSourceError) as exc_info:
                await client.get_study("NCT01234567")

        assert not isinstance(exc_info.value, TrialNotFoundError)


@pytest.mark.asyncio
class TestCountAndStats:
    async def test_count_requests_one_record_with_total(self, client):
        with patch.object(
            client,
            "_rest_get",
            new_callable=AsyncMock,
            return_value={"studies": [], "totalCount": 1234},
        ) as mock_get:
            count = await client.count_studies(
                {"query.locn": "United+States", "pageToken": "stale"}
            )

        assert count == 1234
        params = mock_get.call_args.args[1]
        assert params["pageSize"] == 1
        assert params["countTotal"] == "true"
        assert "pageToken" not in params

    async def test_field_sizes(self, client):
        payload = [{"field": "Phase", "topSizes": [{"size": 1, "studiesCount": 10}]}]
        with patch.object(
            client, "_rest_get", new_callable=AsyncMock, return_value=payload
        ) as mock_get:
            assert await client.get_field_sizes("Phase") == payload

        url, params = mock_get.call_args.args
        assert url.endswith("/stats/field/sizes")
        assert params == {"fields": "Phase"}

    async def test_field_sizes_rejects_non_list(self, client):
        with patch.object(client, "_rest_get", new_callable=AsyncMock, return_value={}):
            with pytest.raises(DataSourceError):
                await client.get_field_sizes("Phase")
