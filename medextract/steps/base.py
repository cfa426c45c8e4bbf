"""RowEnricher protocol and row context for the parse pipeline."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol, Sequence, runtime_checkable

from ..core.cancellation import CancellationToken


@dataclass(frozen=True)
class RowContext:
    """Immutable context passed to an enricher for one input row.

    Attributes:
        row: Input row, position-addressed, as read from the file.
        row_number: 1-based number of the row in the input (header excluded).
        target_index: Index of the target column (``None`` if not resolved).
        headers: Input header row.
        overwrite: Whether the new columns replace the target column.
    """

    row: tuple[str, ...]
    row_number: int
    target_index: Optional[int]
    headers: tuple[str, ...]
    overwrite: bool = False

    @property
    def target_text(self) -> str:
        if self.target_index is None:
            return ""
        return self.row[self.target_index]


@runtime_checkable
class RowEnricher(Protocol):
    """Protocol all row enrichers must satisfy.

    Implementations can be plain classes, no inheritance required.

    ``transform`` is an async generator yielding 0..N output rows per input
    row. Enrichers may also define:

      - ``async prepare(cancellation)``: called once before the first row.
      - ``finish(cancellation)``: async generator drained after the last
        row, for enrichers that buffer rows.
    """

    name: str
    additional_output_column_count: int
    default_output_headers: list[str]
    default_target_header: Optional[str]
    requires_target_column: bool

    def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]: ...


# -- row helpers ---------------------------------------------------------


def single_line(text: str) -> str:
    """Collapse *text* onto one line: newlines become tabs, CRs are dropped."""
    return text.replace("\r", "").replace("\n", "\t")


def build_output_row(
    row: Sequence[str],
    target_index: Optional[int],
    values: Sequence[str],
    overwrite: bool,
) -> list[str]:
    """Place *values* in the target column's position or after the row."""
    if overwrite and target_index is not None:
        return list(row[:target_index]) + list(values) + list(row[target_index + 1:])
    return list(row) + list(values)


def collation_key(text: str) -> str:
    """Sort key for alphabetical order: case and accents are ignored."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()
