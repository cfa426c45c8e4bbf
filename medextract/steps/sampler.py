"""Reproducible uniform sample of the input rows."""

from __future__ import annotations

import random
from typing import AsyncIterator, Optional

from ..core.cancellation import CancellationToken
from ..utils.logger import get_logger
from .base import RowContext

logger = get_logger(__name__)

DEFAULT_SEED = 1947
DEFAULT_SAMPLE_SIZE = 100

_MAX_KEY = 2**31 - 1


class RandomSampler:
    """Keeps ``sample_size`` rows chosen at random with a fixed seed.

    Every row gets a distinct random key; after the last row the rows are
    ordered by key and the first ``sample_size`` are emitted. All rows
    are held in memory until then.
    """

    name = "sample"
    additional_output_column_count = 0
    default_output_headers: list[str] = []
    default_target_header: Optional[str] = None
    requires_target_column = False

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE, seed: int = DEFAULT_SEED):
        if sample_size < 0:
            raise ValueError(f"sample_size must be non-negative, got {sample_size}")
        self.sample_size = sample_size
        self.seed = seed
        self._random = random.Random(seed)
        self._rows: dict[int, list[str]] = {}

    async def prepare(self, cancellation: CancellationToken) -> None:
        self._random = random.Random(self.seed)
        self._rows = {}

    def _next_key(self) -> int:
        key = self._random.randrange(_MAX_KEY)
        while key in self._rows:
            key = self._random.randrange(_MAX_KEY)
        return key

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        self._rows[self._next_key()] = list(ctx.row)
        return
        yield  # pragma: no cover

    async def finish(self, cancellation: CancellationToken) -> AsyncIterator[list[str]]:
        logger.info("Sampling %d of %d row(s) with seed %d", min(self.sample_size, len(self._rows)), len(self._rows), self.seed)
        for key in sorted(self._rows)[: self.sample_size]:
            cancellation.raise_if_cancelled()
            yield self._rows[key]
        self._rows = {}
