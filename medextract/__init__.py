"""
medextract - streaming extraction of medications and clinical
measurements from CSV reports.

Each input row's free-text column is sent to an LLM service; every
extracted item becomes its own output row.
"""

from .core import (
    ApiConfig,
    CancellationToken,
    ColumnNotFoundError,
    ConfigurationError,
    EnrichmentError,
    ExtractionError,
    InputFormatError,
    OperationCancelledError,
    OutputHeaderCountMismatchError,
    ParserConfig,
    ProgressValue,
)
from .matching import analyze_matches, find_all_matches, find_matches_by_similarity
from .pipeline import DataParser, ParseResult
from .steps import (
    ExtractionClient,
    ManualValidator,
    MeasurementsExtractor,
    MedicationExtractor,
    MedicationGroupMapper,
    RandomSampler,
    SimpleMeasurementsExtractor,
)

__version__ = "0.1.0"

__all__ = [
    'DataParser',
    'ParseResult',
    'ParserConfig',
    'ApiConfig',
    'CancellationToken',
    'ProgressValue',
    'ExtractionClient',
    'MedicationExtractor',
    'MeasurementsExtractor',
    'SimpleMeasurementsExtractor',
    'MedicationGroupMapper',
    'RandomSampler',
    'ManualValidator',
    'analyze_matches',
    'find_all_matches',
    'find_matches_by_similarity',
    'EnrichmentError',
    'ConfigurationError',
    'ColumnNotFoundError',
    'OutputHeaderCountMismatchError',
    'InputFormatError',
    'ExtractionError',
    'OperationCancelledError',
]
