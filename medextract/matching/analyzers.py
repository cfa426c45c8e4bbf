"""Similarity scoring of extracted medications against their source text."""

from __future__ import annotations

import re
from typing import Sequence

from rapidfuzz.distance import Levenshtein

from ..utils.logger import get_logger
from .models import MatchAnalysis, MatchDetails, MatchSimilarityType

logger = get_logger(__name__)

EXACT_MATCH_THRESHOLD = 1.0
STRONG_SIMILARITY_THRESHOLD = 0.8
MODERATE_SIMILARITY_THRESHOLD = 0.6

# Candidates this short are only ever matched exactly
MIN_FUZZY_CANDIDATE_LENGTH = 4
MIN_WORD_LENGTH = 3

_WORD_RE = re.compile(r"\b\w+\b")


def find_ignore_case(text: str, needle: str, start: int = 0) -> int:
    """Offset of *needle* in *text* from *start*, ignoring case; -1 if absent.

    Offsets refer to *text* itself, whose length may differ from its
    lower-cased form.
    """
    match = re.compile(re.escape(needle), re.IGNORECASE).search(text, start)
    return match.start() if match else -1


def is_exact_match(score: float) -> bool:
    return score >= EXACT_MATCH_THRESHOLD


def is_strong_similarity_or_better(score: float) -> bool:
    return score >= STRONG_SIMILARITY_THRESHOLD


def is_moderate_similarity_or_better(score: float) -> bool:
    return score >= MODERATE_SIMILARITY_THRESHOLD


def classify_similarity(score: float) -> MatchSimilarityType:
    if is_exact_match(score):
        return MatchSimilarityType.EXACT
    if is_strong_similarity_or_better(score):
        return MatchSimilarityType.STRONG_SIMILARITY
    if is_moderate_similarity_or_better(score):
        return MatchSimilarityType.MODERATE_SIMILARITY
    return MatchSimilarityType.NONE


def similarity(a: str, b: str) -> tuple[float, int]:
    """Return ``(1 - distance / max_len, distance)``, ignoring case."""
    distance = Levenshtein.distance(a.lower(), b.lower())
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0, 0
    return 1.0 - distance / longest, distance


def analyze_matches(text: str, medications: Sequence[str]) -> MatchAnalysis:
    """Classify every candidate medication against *text*.

    Blank and repeated candidates are skipped. A candidate found verbatim
    (ignoring case) is an exact match; otherwise, when it is long enough,
    it is compared to every word of the text and the best-scoring word is
    kept.
    """
    details: dict[str, MatchDetails] = {}
    words = [(m.group(), m.start()) for m in _WORD_RE.finditer(text)]
    matched = 0

    for medication in medications:
        if not medication or not medication.strip():
            continue
        if medication in details:
            continue

        exact_index = find_ignore_case(text, medication)
        if exact_index >= 0:
            detail = MatchDetails(
                medication=medication,
                exact_match=True,
                similarity_score=EXACT_MATCH_THRESHOLD,
                best_match=medication,
                best_match_index=exact_index,
                levenshtein_distance=0,
                match_type=MatchSimilarityType.EXACT,
            )
        else:
            best_score = 0.0
            best_word: str | None = None
            best_index: int | None = None
            best_distance: int | None = None
            if len(medication) >= MIN_FUZZY_CANDIDATE_LENGTH:
                for word, index in words:
                    if len(word) < MIN_WORD_LENGTH:
                        continue
                    score, distance = similarity(medication, word)
                    if score > best_score:
                        best_score, best_word, best_index, best_distance = score, word, index, distance
            detail = MatchDetails(
                medication=medication,
                exact_match=False,
                similarity_score=best_score,
                best_match=best_word,
                best_match_index=best_index,
                levenshtein_distance=best_distance,
                match_type=classify_similarity(best_score),
            )

        if is_strong_similarity_or_better(detail.similarity_score):
            matched += 1
        details[medication] = detail

    percentage = matched / len(medications) * 100 if medications else 0.0
    logger.debug(
        "Medications present in text (exact or strong similarity): %d/%d (%.1f%%)",
        matched, len(medications), percentage,
    )
    return MatchAnalysis(match_count=matched, match_percentage=percentage, details=details)
