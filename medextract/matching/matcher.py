"""Locate medications inside report text without overlapping spans."""

from __future__ import annotations

from typing import Sequence

from .analyzers import analyze_matches, find_ignore_case, is_strong_similarity_or_better
from .models import ExperimentResult, MedicationMatch


def _overlaps_any(matches: list[MedicationMatch], start: int, length: int) -> bool:
    return any(match.overlaps(start, length) for match in matches)


def find_all_matches(text: str, medications: Sequence[str]) -> list[MedicationMatch]:
    """Find every verbatim (case-insensitive) occurrence of each medication.

    Candidates are scanned in the given order; an occurrence that shares
    any character with an already accepted one is dropped. Results are
    sorted by start offset.
    """
    matches: list[MedicationMatch] = []
    for medication in medications:
        if not medication:
            continue
        start = 0
        while True:
            index = find_ignore_case(text, medication, start)
            if index == -1:
                break
            if not _overlaps_any(matches, index, len(medication)):
                matches.append(
                    MedicationMatch(
                        start_index=index,
                        length=len(medication),
                        match_in_text=text[index:index + len(medication)],
                        extracted_medication=medication,
                        experiment_result=ExperimentResult.TP,
                    )
                )
            start = index + 1

    matches.sort(key=lambda m: m.start_index)
    return matches


def find_matches_by_similarity(text: str, medications: Sequence[str]) -> list[MedicationMatch]:
    """One match per candidate that is an exact or strong-similarity match.

    The match points at the first verbatim occurrence for exact matches
    (``TP``) and at the best-scoring word otherwise (``TP_``).
    """
    analysis = analyze_matches(text, medications)
    matches: list[MedicationMatch] = []
    for detail in analysis.details.values():
        if not is_strong_similarity_or_better(detail.similarity_score):
            continue
        assert detail.best_match_index is not None and detail.best_match is not None
        length = len(detail.best_match)
        matches.append(
            MedicationMatch(
                start_index=detail.best_match_index,
                length=length,
                match_in_text=text[detail.best_match_index:detail.best_match_index + length],
                extracted_medication=detail.medication,
                experiment_result=ExperimentResult.TP if detail.exact_match else ExperimentResult.TP_,
            )
        )
    return matches
