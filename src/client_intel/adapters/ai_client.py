"""HTTP client for an OpenAI-compatible chat-completions endpoint.

The AI tier asks for a JSON object (``response_format=json_object``) and
returns it parsed. Transport errors, non-2xx responses and non-JSON content
are logged and raised as ``EnrichmentFailedError``; schema validation happens
in the router via ``core.enrichment.parse_analysis``.
"""

import json
from typing import Any

import httpx

from client_intel.errors import ConfigurationMissingError, EnrichmentFailedError
from client_intel.observability import get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

_SYSTEM_PROMPT = (
    "You are a B2B sales analyst for an identity-verification API company. "
    "Answer only with a single JSON object."
)


class OpenAIChatClient:
    """Async chat-completions client. Implements IAIClient.

    Args:
        settings: Provides ai_api_key, ai_base_url, ai_model and ai_timeout_seconds.
        transport: Optional httpx transport for tests.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = settings.ai_api_key
        self._base_url = settings.ai_base_url.rstrip("/")
        self._model = settings.ai_model
        self._timeout = settings.ai_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def analyze(self, prompt: str) -> dict[str, Any]:
        """Send ``prompt`` and return the model's JSON object.

        Raises:
            ConfigurationMissingError: If no API key is configured.
            EnrichmentFailedError: On HTTP errors or when the content is not a JSON object.
        """
        if not self.configured:
            raise ConfigurationMissingError("ai")

        url = f"{self._base_url}/chat/completions"
        body = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.2,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "ai_http_error",
                    url=url,
                    status_code=exc.response.status_code,
                    response_text=exc.response.text[:500],
                )
                raise EnrichmentFailedError("ai", f"HTTP {exc.response.status_code}") from exc
            except httpx.RequestError as exc:
                logger.error("ai_connection_error", url=url, error=str(exc))
                raise EnrichmentFailedError("ai", str(exc)) from exc
            except ValueError as exc:
                raise EnrichmentFailedError("ai", "response body was not JSON") from exc

        try:
            content = data["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.warning("ai_malformed_response", model=self._model, error=str(exc))
            raise EnrichmentFailedError("ai", "completion content was not valid JSON") from exc

        if not isinstance(parsed, dict):
            raise EnrichmentFailedError("ai", "completion content was not a JSON object")

        usage = data.get("usage") or {}
        logger.info(
            "ai_analysis_completed",
            model=self._model,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
        return parsed
