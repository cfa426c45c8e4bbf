"""Data classes shared by the matcher and the manual validator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExperimentResult(str, Enum):
    """Outcome of validating one extracted medication against its report."""

    TP = "TP"
    """True positive found verbatim in the text"""

    TP_ = "TP_"
    """True positive found by similarity (misspelt or inflected)"""

    FP = "FP"
    """Extracted, but not actually a medication of the report"""

    FN = "FN"
    """Medication in the report the extraction missed"""


class MatchSimilarityType(str, Enum):
    NONE = "None"
    EXACT = "Exact"
    STRONG_SIMILARITY = "Strong Similarity"
    MODERATE_SIMILARITY = "Moderate Similarity"


@dataclass
class MedicationMatch:
    """Location of a medication inside a report text.

    Attributes:
        start_index: Offset of the match in the text.
        length: Length of the matched span.
        match_in_text: The text at that span, as written in the report.
        extracted_medication: The candidate that produced the match.
        experiment_result: Validation outcome (``TP`` until reviewed).
        corrected_medication: Reviewer's correction; falls back to
            ``extracted_medication`` when unset.
    """

    start_index: int
    length: int
    match_in_text: str
    extracted_medication: str
    experiment_result: ExperimentResult = ExperimentResult.TP
    corrected_medication: Optional[str] = None

    @property
    def end_index(self) -> int:
        """Exclusive end offset."""
        return self.start_index + self.length

    @property
    def effective_medication(self) -> str:
        return self.corrected_medication or self.extracted_medication

    def overlaps(self, start: int, length: int) -> bool:
        return start < self.end_index and self.start_index < start + length


@dataclass(frozen=True)
class MatchDetails:
    """How one candidate relates to the text it was extracted from."""

    medication: str
    exact_match: bool
    similarity_score: float
    best_match: Optional[str]
    best_match_index: Optional[int]
    levenshtein_distance: Optional[int]
    match_type: MatchSimilarityType

    @property
    def similarity_percentage(self) -> str:
        return f"{self.similarity_score:.2%}"


@dataclass(frozen=True)
class MatchAnalysis:
    """Aggregate result of :func:`analyze_matches`.

    ``match_percentage`` is for reporting only.
    """

    match_count: int
    match_percentage: float
    details: dict[str, MatchDetails]
