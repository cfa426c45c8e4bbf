"""ExtractionClient — resilient structured extraction through an LLM provider."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..core.cancellation import CancellationToken
from ..core.config import ApiConfig
from ..core.exceptions import ExtractionError
from ..core.retry import RetryPolicy
from ..utils.logger import get_logger
from .providers.base import LLMAPIError, LLMClient

logger = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

MALFORMED_ERRORS: tuple[type[BaseException], ...] = (json.JSONDecodeError, ValidationError)


class ExtractionClient:
    """Sends text to the extraction service and validates the answer.

    Two retry policies wrap every call, the malformed-response policy
    outside the transport policy:

      - Transport failures (``LLMAPIError``) follow
        ``ApiConfig.transport_delays``; once exhausted the error propagates.
      - Malformed answers (invalid JSON, or JSON that doesn't fit the
        schema) are retried ``ApiConfig.invalid_response_attempts`` times;
        once exhausted ``extract`` logs a warning and returns ``None``.

    An answer whose payload is JSON ``null`` raises ``ExtractionError``
    immediately.
    """

    def __init__(
        self,
        api_config: ApiConfig | None = None,
        client: LLMClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_config = api_config or ApiConfig.from_env()
        self._client: LLMClient | None = client
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self.api_config.model

    # -- client ----------------------------------------------------------

    def _resolve_client(self) -> LLMClient:
        """Lazily create or return the LLMClient."""
        if self._client is None:
            cfg = self.api_config
            if cfg.provider == "openai":
                from .providers.openai import OpenAIClient

                self._client = OpenAIClient(
                    api_key=cfg.api_key, base_url=cfg.base_url, timeout=cfg.timeout,
                )
            else:
                from .providers.ollama import OllamaClient

                self._client = OllamaClient(
                    base_url=cfg.base_url, api_key=cfg.api_key, timeout=cfg.timeout,
                )
        return self._client

    # -- policies --------------------------------------------------------

    def transport_policy(self) -> RetryPolicy:
        return RetryPolicy(
            "Transport", (LLMAPIError,), self.api_config.transport_delays, sleep=self._sleep,
        )

    def malformed_policy(self) -> RetryPolicy:
        return RetryPolicy(
            "Malformed response",
            MALFORMED_ERRORS,
            self.api_config.invalid_response_delays,
            sleep=self._sleep,
        )

    # -- extraction ------------------------------------------------------

    @staticmethod
    def decode(payload: str, schema: Type[SchemaT], model: str | None = None) -> SchemaT:
        """Parse *payload* as JSON and validate it against *schema*.

        Raises:
            json.JSONDecodeError / ValidationError: The payload is malformed.
            ExtractionError: The payload is JSON ``null``.
        """
        parsed = json.loads(payload)
        if parsed is None:
            raise ExtractionError("Extraction service returned a null payload", model=model)
        return schema.model_validate(parsed)

    async def extract(
        self,
        text: str,
        schema: Type[SchemaT],
        system_prompt: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> Optional[SchemaT]:
        """Extract *schema* from *text*.

        Returns:
            The validated model, or ``None`` when every attempt produced a
            malformed answer.

        Raises:
            LLMAPIError: Transport retries exhausted.
            ExtractionError: The service returned no usable payload.
            OperationCancelledError: *cancellation* was triggered.
        """
        client = self._resolve_client()
        cfg = self.api_config
        transport = self.transport_policy()
        malformed = self.malformed_policy()

        async def call() -> str:
            return await client.generate(
                text,
                model=cfg.model,
                system=system_prompt,
                temperature=cfg.temperature,
                json_format=cfg.use_json_format,
            )

        async def attempt() -> SchemaT:
            payload = await transport.execute(call, cancellation)
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            result = self.decode(payload, schema, model=cfg.model)
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            return result

        try:
            return await malformed.execute(attempt, cancellation)
        except MALFORMED_ERRORS as exc:
            logger.warning(
                "No valid %s after %d attempt(s), returning no result: %s",
                schema.__name__, malformed.max_attempts, exc,
            )
            return None
