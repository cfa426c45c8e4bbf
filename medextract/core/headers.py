"""Header lookup and reconciliation between input and output files."""

from __future__ import annotations

from typing import Iterable

from ..utils.logger import get_logger
from .exceptions import OutputHeaderCountMismatchError

logger = get_logger(__name__)


def find_column_index(headers: list[str], name: str) -> int | None:
    """Index of the first header equal to *name*, ignoring case."""
    wanted = name.casefold()
    for index, header in enumerate(headers):
        if header.casefold() == wanted:
            return index
    return None


def ensure_unique_header(existing: Iterable[str], name: str) -> str:
    """Return *name*, or ``name1``, ``name2``, ... if it is already taken."""
    taken = set(existing)
    if name not in taken:
        return name
    suffix = 1
    while f"{name}{suffix}" in taken:
        suffix += 1
    return f"{name}{suffix}"


def reconcile_headers(
    headers: list[str],
    additional: list[str],
    target_index: int | None,
    overwrite: bool,
    expected_count: int,
) -> tuple[list[str], list[str]]:
    """Compute the output header set.

    Args:
        headers: Input header row.
        additional: Requested names for the columns the parser adds.
        target_index: Index of the target column (``None`` if there is none).
        overwrite: Replace the target column instead of appending.
        expected_count: Number of columns the parser adds.

    Returns:
        ``(output_headers, resolved_additional)``.

    Raises:
        OutputHeaderCountMismatchError: If ``len(additional) != expected_count``.
    """
    if len(additional) != expected_count:
        raise OutputHeaderCountMismatchError(expected_count, len(additional))

    if not additional:
        return list(headers), []

    if (
        overwrite
        and target_index is not None
        and len(additional) == 1
        and additional[0].casefold() == headers[target_index].casefold()
    ):
        return list(headers), [headers[target_index]]

    resolved: list[str] = []
    taken = list(headers)
    for name in additional:
        unique = ensure_unique_header(taken, name)
        if unique != name:
            logger.warning("The output header name was changed to '%s' (from '%s')", unique, name)
        resolved.append(unique)
        taken.append(unique)

    if overwrite and target_index is not None:
        output = headers[:target_index] + resolved + headers[target_index + 1:]
    else:
        output = list(headers) + resolved
    return output, resolved
