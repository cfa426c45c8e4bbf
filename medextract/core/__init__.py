"""
Core building blocks: configuration, errors, cancellation, retries,
progress and header handling.
"""

from .cancellation import CancellationToken
from .config import ApiConfig, ParserConfig
from .exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    EnrichmentError,
    ExtractionError,
    InputFormatError,
    OperationCancelledError,
    OutputHeaderCountMismatchError,
)
from .progress import ProgressReporter, ProgressValue
from .retry import RetryPolicy

__all__ = [
    'CancellationToken',
    'ApiConfig',
    'ParserConfig',
    'ColumnNotFoundError',
    'ConfigurationError',
    'EnrichmentError',
    'ExtractionError',
    'InputFormatError',
    'OperationCancelledError',
    'OutputHeaderCountMismatchError',
    'ProgressReporter',
    'ProgressValue',
    'RetryPolicy',
]
