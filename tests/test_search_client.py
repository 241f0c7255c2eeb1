"""Tests for GoogleSearchClient using httpx.MockTransport."""

import httpx
import pytest

from client_intel.adapters.search_client import GoogleSearchClient
from client_intel.errors import EnrichmentFailedError
from client_intel.settings import Settings


def _configured(settings: Settings) -> Settings:
    return settings.model_copy(update={"search_api_key": "test-key", "search_engine_id": "engine-1"})


class TestGoogleSearchClient:
    @pytest.mark.asyncio
    async def test_unconfigured_returns_empty_without_request(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = GoogleSearchClient(settings, transport=httpx.MockTransport(handler))

        assert client.configured is False
        assert await client.search("Quickloan Finance company") == []

    @pytest.mark.asyncio
    async def test_maps_items_and_classifies_sources(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "title": "Quickloan Finance | LinkedIn",
                            "snippet": "Lending company",
                            "link": "https://www.linkedin.com/company/quickloan",
                            "displayLink": "www.linkedin.com",
                        },
                        {
                            "title": "Quickloan Finance raises funding",
                            "snippet": "The lender raised $12 million.",
                            "link": "https://economictimes.indiatimes.com/quickloan",
                            "displayLink": "economictimes.indiatimes.com",
                        },
                        "not-a-dict",
                    ]
                },
            )

        client = GoogleSearchClient(_configured(settings), transport=httpx.MockTransport(handler))
        results = await client.search("Quickloan Finance company")

        assert [r["source"] for r in results] == ["linkedin", "news"]
        assert results[0]["display_link"] == "www.linkedin.com"
        assert seen[0].url.params["q"] == "Quickloan Finance company"
        assert seen[0].url.params["cx"] == "engine-1"
        assert seen[0].url.params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_no_items_is_empty(self, settings: Settings) -> None:
        client = GoogleSearchClient(
            _configured(settings), transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        )
        assert await client.search("nothing") == []

    @pytest.mark.asyncio
    async def test_http_error_raises_enrichment_failed(self, settings: Settings) -> None:
        client = GoogleSearchClient(
            _configured(settings),
            transport=httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited")),
        )

        with pytest.raises(EnrichmentFailedError) as exc_info:
            await client.search("Quickloan Finance company")

        assert "429" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_raises_enrichment_failed(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = GoogleSearchClient(_configured(settings), transport=httpx.MockTransport(handler))

        with pytest.raises(EnrichmentFailedError):
            await client.search("Quickloan Finance company")

    @pytest.mark.asyncio
    async def test_non_json_body_raises_enrichment_failed(self, settings: Settings) -> None:
        client = GoogleSearchClient(
            _configured(settings), transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        )

        with pytest.raises(EnrichmentFailedError):
            await client.search("Quickloan Finance company")
