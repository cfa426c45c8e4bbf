"""Approximate matching of extracted medications against report text."""

from .analyzers import analyze_matches, classify_similarity
from .matcher import find_all_matches, find_matches_by_similarity
from .models import (
    ExperimentResult,
    MatchAnalysis,
    MatchDetails,
    MatchSimilarityType,
    MedicationMatch,
)

__all__ = [
    "analyze_matches",
    "classify_similarity",
    "find_all_matches",
    "find_matches_by_similarity",
    "ExperimentResult",
    "MatchAnalysis",
    "MatchDetails",
    "MatchSimilarityType",
    "MedicationMatch",
]
