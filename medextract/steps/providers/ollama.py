"""Ollama provider adapter — native ``/api/generate`` endpoint over httpx."""

from __future__ import annotations

import os
from typing import Any

import httpx

from ...core.exceptions import ExtractionError
from ...utils.logger import get_logger
from .base import LLMAPIError, parse_retry_after

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
API_KEY_HEADER = "X-API-Key"


class OllamaClient:
    """Adapter for Ollama servers (or proxies in front of them).

    Each call opens its own ``httpx.AsyncClient`` so no connection state
    outlives a single attempt.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or os.environ.get("MEDEXTRACT_API_URL") or DEFAULT_BASE_URL).rstrip("/")
        self._api_key = api_key or os.environ.get("MEDEXTRACT_API_KEY")
        self._timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        if self._base_url.endswith("/api/generate"):
            return self._base_url
        return f"{self._base_url}/api/generate"

    def _build_body(
        self,
        prompt: str,
        model: str,
        system: str | None,
        temperature: float,
        json_format: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "prompt": prompt,
            "model": model,
            "options": {"temperature": temperature},
            "stream": False,
        }
        if system:
            body["system"] = system
        if json_format:
            body["format"] = "json"
        return body

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        system: str | None = None,
        temperature: float = 0.0,
        json_format: bool = True,
    ) -> str:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers[API_KEY_HEADER] = self._api_key
        body = self._build_body(prompt, model, system, temperature, json_format)

        kwargs: dict[str, Any] = {"timeout": self._timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport

        async with httpx.AsyncClient(**kwargs) as client:
            try:
                response = await client.post(self.endpoint, json=body, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                retry_after = parse_retry_after(exc.response.headers.get("retry-after"))
                raise LLMAPIError(
                    f"Ollama returned HTTP {status} for model '{model}'",
                    status_code=status,
                    retry_after=retry_after,
                    is_rate_limit=status == 429,
                ) from exc
            except httpx.TimeoutException as exc:
                raise LLMAPIError(
                    f"Ollama timeout for model '{model}': {exc}",
                    status_code=408,
                ) from exc
            except httpx.HTTPError as exc:
                raise LLMAPIError(
                    f"Ollama request failed for model '{model}': {exc}",
                ) from exc

            # json.JSONDecodeError propagates as a malformed response
            data = response.json()

        if not isinstance(data, dict) or data.get("response") is None:
            raise ExtractionError(
                "Ollama response has no 'response' payload", model=model,
            )
        logger.debug("Ollama %s answered %d chars", model, len(data["response"]))
        return data["response"]
