"""Adapter for OpenAI-compatible Chat Completions endpoints.

Works against Ollama's ``/v1`` endpoint, vLLM, LM Studio or OpenAI itself.
SDK retries are switched off; ``ExtractionClient`` owns every retry.
"""

from __future__ import annotations

import os
from typing import Any

from ...core.exceptions import ExtractionError
from .base import LLMAPIError, parse_retry_after


def _translate_error(exc: Exception, model: str) -> LLMAPIError | None:
    """Map an ``openai`` SDK exception to ``LLMAPIError`` (None if not transport-class)."""
    import openai

    if isinstance(exc, openai.RateLimitError):
        response = getattr(exc, "response", None)
        return LLMAPIError(
            f"Rate limited by '{model}': {exc}",
            status_code=429,
            retry_after=parse_retry_after(response.headers.get("retry-after") if response is not None else None),
            is_rate_limit=True,
        )
    if isinstance(exc, openai.APITimeoutError):
        return LLMAPIError(f"Request to '{model}' timed out: {exc}", status_code=408)
    if isinstance(exc, openai.APIConnectionError):
        return LLMAPIError(f"Could not reach the service for '{model}': {exc}")
    if isinstance(exc, openai.APIStatusError):
        return LLMAPIError(
            f"Service returned HTTP {exc.status_code} for '{model}': {exc}",
            status_code=exc.status_code,
        )
    return None


class OpenAIClient:
    """Chat-completions client; the answer is the first choice's content."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 300.0,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self._api_key or os.environ.get("MEDEXTRACT_API_KEY") or os.environ.get("OPENAI_API_KEY"),
                base_url=self._base_url or None,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        system: str | None = None,
        temperature: float = 0.0,
        json_format: bool = True,
    ) -> str:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        request: dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if json_format:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self._get_client().chat.completions.create(**request)
        except Exception as exc:
            api_error = _translate_error(exc, model)
            if api_error is None:
                raise
            raise api_error from exc

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise ExtractionError("Chat completion carried no message content", model=model)
        return content
