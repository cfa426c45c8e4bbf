"""Pydantic schemas for extraction payloads."""

from .extraction import ExtractionSchema, Measurement, MeasurementsData, MedicationsList

__all__ = ["ExtractionSchema", "Measurement", "MeasurementsData", "MedicationsList"]
