"""Row enrichers and the resilient extraction client."""

from .base import RowContext, RowEnricher, build_output_row, single_line
from .grouping import MedicationGroupMapper
from .llm import ExtractionClient
from .manual_validation import ManualValidator, accept_all
from .measurements import MeasurementsExtractor
from .medication import MedicationExtractor
from .sampler import RandomSampler
from .simple_measurements import SimpleMeasurementsExtractor

__all__ = [
    "RowContext",
    "RowEnricher",
    "build_output_row",
    "single_line",
    "ExtractionClient",
    "ManualValidator",
    "MeasurementsExtractor",
    "MedicationExtractor",
    "MedicationGroupMapper",
    "RandomSampler",
    "SimpleMeasurementsExtractor",
    "accept_all",
]
