"""Provider interface: the LLMClient protocol and the transport error it raises."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


class LLMAPIError(Exception):
    """Provider-agnostic transport error for retry logic.

    Wraps provider-specific failures (connection errors, timeouts, non-2xx
    responses) so the retry policies don't need to know about specific
    HTTP libraries or SDKs.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
        is_rate_limit: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_rate_limit = is_rate_limit


@runtime_checkable
class LLMClient(Protocol):
    """Protocol all provider adapters must satisfy.

    ``generate`` performs exactly one round trip and returns the model's
    output text (the embedded JSON payload). Adapters raise
    ``LLMAPIError`` for transport failures, ``json.JSONDecodeError`` for
    an unparseable response body and ``ExtractionError`` when the body
    carries no payload at all.
    """

    async def generate(
        self,
        prompt: str,
        *,
        model: str,
        system: str | None = None,
        temperature: float = 0.0,
        json_format: bool = True,
    ) -> str: ...


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a ``Retry-After`` header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
