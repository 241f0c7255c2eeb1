"""HTTP client for the Google Custom Search JSON API.

Used by the search tier of the decision router. Without credentials the
client reports ``configured=False`` and every search returns an empty list.
HTTP and transport failures are logged and raised as
``EnrichmentFailedError`` so the router can fall back.

API docs: https://developers.google.com/custom-search/v1/reference/rest/v1/cse/list
"""

from typing import Any

import httpx

from client_intel.core.enrichment import classify_result_source
from client_intel.errors import EnrichmentFailedError
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

_RESULTS_PER_QUERY = 10


class GoogleSearchClient:
    """Async client for Google Custom Search.

    Implements ISearchClient from core/interfaces.py.

    Args:
        settings: Provides search_api_key, search_engine_id, search_base_url and timeout.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = settings.search_api_key
        self._engine_id = settings.search_engine_id
        self._base_url = settings.search_base_url
        self._timeout = settings.search_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._engine_id)

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Run one query.

        Args:
            query: Free-text search query.

        Returns:
            Result dicts with title, snippet, link, display_link and source.
            Empty when credentials are missing or nothing matched.

        Raises:
            EnrichmentFailedError: On non-2xx responses or connection errors.
        """
        if not self.configured:
            logger.info("search_not_configured", query=query)
            return []

        params = {
            "key": self._api_key or "",
            "cx": self._engine_id or "",
            "q": query,
            "num": str(_RESULTS_PER_QUERY),
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(self._base_url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "search_http_error",
                    status_code=exc.response.status_code,
                    response_text=exc.response.text[:500],
                )
                raise EnrichmentFailedError("search", f"HTTP {exc.response.status_code}") from exc
            except httpx.RequestError as exc:
                logger.error("search_connection_error", error=str(exc))
                raise EnrichmentFailedError("search", str(exc)) from exc
            except ValueError as exc:
                logger.error("search_invalid_json", error=str(exc))
                raise EnrichmentFailedError("search", "response was not JSON") from exc

        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []

        results: list[dict[str, Any]] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            link = str(item.get("link") or "")
            display_link = str(item.get("displayLink") or "")
            results.append(
                {
                    "title": str(item.get("title") or ""),
                    "snippet": str(item.get("snippet") or ""),
                    "link": link,
                    "display_link": display_link,
                    "source": classify_result_source(link, display_link),
                }
            )

        logger.info("search_completed", query=query, results=len(results))
        return results
