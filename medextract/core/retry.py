"""Retry policies for calls to the extraction service.

A ``RetryPolicy`` pairs a predicate (the exception types it retries) with
a wait schedule (one retry per entry). Policies compose by nesting: the
outer policy sees only what the inner one gave up on.

    transport = RetryPolicy("transport", (LLMAPIError,), [1, 2, 5])
    malformed = RetryPolicy("malformed", (json.JSONDecodeError,), [2] * 9)
    await malformed.execute(lambda: transport.execute(call, token), token)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ..utils.logger import get_logger
from .cancellation import CancellationToken
from .exceptions import OperationCancelledError

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retry an async callable on selected exceptions with a fixed schedule."""

    def __init__(
        self,
        name: str,
        retry_on: tuple[type[BaseException], ...],
        delays: Sequence[float],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.retry_on = tuple(retry_on)
        self.delays = [float(d) for d in delays]
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return len(self.delays) + 1

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        cancellation: CancellationToken | None = None,
    ) -> T:
        """Run *fn* until it succeeds or the schedule is exhausted.

        Raises:
            The last retryable exception once every retry is spent, any
            non-retryable exception immediately, or
            ``OperationCancelledError`` as soon as cancellation is seen.
        """
        attempt = 0
        while True:
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            try:
                return await fn()
            except OperationCancelledError:
                raise
            except self.retry_on as exc:
                if attempt >= len(self.delays):
                    logger.debug(
                        "%s retry policy exhausted after %d attempt(s)", self.name, attempt + 1
                    )
                    raise
                delay = self.delays[attempt]
                attempt += 1
                logger.warning(
                    "%s failure (attempt %d/%d), retrying in %.1fs: %s",
                    self.name, attempt, self.max_attempts, delay, exc,
                )
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                await self._sleep(delay)
