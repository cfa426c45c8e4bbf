"""Pydantic schemas for the payloads the extraction service returns.

Keys are the ones the prompts ask for, so they keep the service's
spelling. Unknown keys are rejected; an empty object is accepted as "no
items", which is what the prompts ask the model to send for blank text.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractionSchema(BaseModel):
    """Base for service payloads: strict about unknown keys."""

    model_config = ConfigDict(extra="forbid")


class MedicationsList(ExtractionSchema):
    """``{"Medicamentos": ["...", ...]}``"""

    Medicamentos: list[str] = Field(default_factory=list)

    @field_validator("Medicamentos")
    @classmethod
    def strip_blank(cls, v: list[str]) -> list[str]:
        return [name.strip() for name in v if name and name.strip()]


class Measurement(ExtractionSchema):
    """One measurement as written in the report.

    Attributes:
        Type: Measurement name (``FEV1``, ``FVC``, ...).
        Value: Numeric value without its unit.
        Unit: ``"%"``, ``"l"``, ``"ml"`` or ``None`` when the text has none.
    """

    Type: str
    Value: float
    Unit: Optional[str] = None

    @field_validator("Value", mode="before")
    @classmethod
    def normalize_decimal_comma(cls, v: Any) -> Any:
        """Accept ``"65,5"`` as well as ``65.5``."""
        if isinstance(v, str):
            return v.strip().replace(",", ".")
        return v

    @field_validator("Unit", mode="before")
    @classmethod
    def blank_unit_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class MeasurementsData(ExtractionSchema):
    """``{"Measurements": [{"Type": ..., "Value": ..., "Unit": ...}, ...]}``"""

    Measurements: list[Measurement] = Field(default_factory=list)
