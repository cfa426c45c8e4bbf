"""
Custom exceptions for the medextract pipeline.

Provides specific exception types for the different failure modes of a
parse run, with row and column context in the message where known.
"""

from __future__ import annotations

from typing import Any


class EnrichmentError(Exception):
    """Base exception for all extraction-related errors."""

    def __init__(self, message: str, row_index: int | None = None, field: str | None = None):
        self.message = message
        self.row_index = row_index
        self.field = field

        error_parts = [message]
        if row_index is not None:
            error_parts.append(f"Row: {row_index}")
        if field is not None:
            error_parts.append(f"Field: {field}")

        super().__init__(" | ".join(error_parts))


class ConfigurationError(EnrichmentError):
    """Raised when configuration is invalid."""
    pass


class ColumnNotFoundError(ConfigurationError):
    """Raised when a required column is missing from the input header."""

    def __init__(self, column: str, headers: list[str] | None = None, **kwargs: Any):
        self.column = column
        self.headers = list(headers or [])
        message = f"Column '{column}' not found in input header"
        if self.headers:
            message += f" (available: {', '.join(self.headers)})"
        super().__init__(message, field=column, **kwargs)


class OutputHeaderCountMismatchError(ConfigurationError):
    """Raised when the configured output headers don't match what the parser produces."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected {expected} additional output header(s), got {actual}"
        )


class InputFormatError(EnrichmentError):
    """Raised when the input data doesn't have the expected shape.

    Typical causes: a row with a different number of fields than the
    header, a report group that is not contiguous, or an unreadable
    auxiliary file (e.g. a medication grouping file).
    """
    pass


class ExtractionError(EnrichmentError):
    """Raised when the extraction service returns an unusable response.

    Unlike malformed JSON (which is retried and finally yields no result),
    this signals a response that can never become valid by asking again,
    such as a missing payload or a literal ``null``.

    Attributes:
        model: Model that produced the response (``None`` if unknown).
    """

    def __init__(self, message: str, model: str | None = None, **kwargs: Any):
        self.model = model
        super().__init__(message, **kwargs)


class OperationCancelledError(Exception):
    """Raised when a run is cancelled through its ``CancellationToken``.

    Not an ``EnrichmentError``. Retry policies never catch it.
    """

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)
