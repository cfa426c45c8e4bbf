"""Progress reporting for parse runs.

The engine reports a fraction in ``[0, 1]`` after every input row.
Reports are forwarded to an optional callback and mirrored on a tqdm
bar; sink errors are logged and never interrupt the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from tqdm.auto import tqdm

from ..utils.logger import get_logger

logger = get_logger(__name__)

_BAR_STEPS = 1000


@dataclass(frozen=True)
class ProgressValue:
    """A single progress report.

    Attributes:
        value: Fraction of the work done, between 0.0 and 1.0.
        rows_processed: Input rows read so far (``None`` on the final report).
    """

    value: float
    rows_processed: Optional[int] = None


class ProgressReporter:
    """Monotonic, best-effort progress sink."""

    def __init__(
        self,
        callback: Optional[Callable[[ProgressValue], Any]] = None,
        show_bar: bool = False,
        desc: str = "Parsing",
    ):
        self._callback = callback
        self._last = 0.0
        self._completed = False
        self._bar = tqdm(total=_BAR_STEPS, desc=desc, unit="‰", disable=not show_bar)
        self._bar_position = 0

    @property
    def last_value(self) -> float:
        return self._last

    @property
    def completed(self) -> bool:
        return self._completed

    def report(self, value: float, rows_processed: Optional[int] = None) -> None:
        """Report *value*, clamped to ``[last reported, 1.0]``."""
        if self._completed:
            return
        value = min(max(value, self._last), 1.0)
        self._last = value
        self._advance_bar(value)
        self._emit(ProgressValue(value=value, rows_processed=rows_processed))

    def complete(self) -> None:
        """Report 1.0 exactly once and close the bar."""
        if self._completed:
            return
        self._last = 1.0
        self._advance_bar(1.0)
        self._emit(ProgressValue(value=1.0))
        self._completed = True
        self._bar.close()

    def close(self) -> None:
        self._bar.close()

    # -- internals -----------------------------------------------------------

    def _advance_bar(self, value: float) -> None:
        position = int(value * _BAR_STEPS)
        if position > self._bar_position:
            self._bar.update(position - self._bar_position)
            self._bar_position = position

    def _emit(self, progress: ProgressValue) -> None:
        if self._callback is None:
            return
        try:
            self._callback(progress)
        except Exception:
            logger.warning("Progress callback %s raised an exception", self._callback, exc_info=True)
