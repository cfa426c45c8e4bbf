"""ManualValidator — review extracted medications one report at a time.

Input rows are the output of a medication extraction: one row per
(report, medication). Rows of the same report must be contiguous. For
every report the validation function receives the report text and the
located medication matches, and returns the matches to keep (possibly
corrected, reclassified, or with additions); one output row is written
per returned match, with five match columns appended.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence, Union

from ..core.cancellation import CancellationToken
from ..core.exceptions import ColumnNotFoundError, InputFormatError
from ..core.headers import find_column_index
from ..matching.matcher import find_matches_by_similarity
from ..matching.models import ExperimentResult, MedicationMatch
from ..utils.logger import get_logger
from .base import RowContext

logger = get_logger(__name__)

DEFAULT_REPORT_NUMBER_HEADER = "Numero"
DEFAULT_MEDICATION_HEADER = "Medication"

MATCH_FIELDS = ("StartIndex", "Length", "MatchInText", "ExperimentResult", "CorrectedMedication")
# CorrectedMedication may be absent from files that were never reviewed
REQUIRED_MATCH_FIELDS = MATCH_FIELDS[:4]

ValidationResult = Union[Sequence[MedicationMatch], Awaitable[Sequence[MedicationMatch]]]
ValidationFunction = Callable[[str, list[MedicationMatch], CancellationToken], ValidationResult]


def accept_all(text: str, matches: list[MedicationMatch], cancellation: CancellationToken) -> list[MedicationMatch]:
    """Validation function that keeps every match as it is."""
    return list(matches)


def match_values(match: MedicationMatch) -> list[str]:
    """The five match columns, in header order."""
    return [
        str(match.start_index),
        str(match.length),
        match.match_in_text,
        match.experiment_result.value,
        match.corrected_medication or "",
    ]


@dataclass
class _ReportGroup:
    report_number: str
    rows: list[list[str]] = field(default_factory=list)
    existing_matches: list[MedicationMatch] = field(default_factory=list)
    first_row_number: int = 0


class ManualValidator:
    """Groups rows by report, validates each group, emits validated rows."""

    name = "validate"
    additional_output_column_count = len(MATCH_FIELDS)
    default_target_header: Optional[str] = "T"
    requires_target_column = True
    supports_overwrite = False

    def __init__(
        self,
        validation_function: ValidationFunction = accept_all,
        report_number_header: str = DEFAULT_REPORT_NUMBER_HEADER,
        medication_header: str = DEFAULT_MEDICATION_HEADER,
    ):
        self.validation_function = validation_function
        self.report_number_header = report_number_header
        self.medication_header = medication_header
        self._reset()

    def _reset(self) -> None:
        self._report_index: int | None = None
        self._medication_index: int | None = None
        self._match_indexes: dict[str, int] | None = None
        self._target_index: int | None = None
        self._group: _ReportGroup | None = None
        self._closed_reports: set[str] = set()

    # -- headers -----------------------------------------------------------

    def match_header(self, match_field: str) -> str:
        return f"{self.medication_header}_{match_field}"

    @property
    def default_output_headers(self) -> list[str]:
        return [self.match_header(f) for f in MATCH_FIELDS]

    def _bind_headers(self, headers: Sequence[str]) -> None:
        headers = list(headers)
        self._report_index = find_column_index(headers, self.report_number_header)
        if self._report_index is None:
            raise ColumnNotFoundError(self.report_number_header, headers)
        self._medication_index = find_column_index(headers, self.medication_header)
        if self._medication_index is None:
            raise ColumnNotFoundError(self.medication_header, headers)

        indexes = {f: find_column_index(headers, self.match_header(f)) for f in MATCH_FIELDS}
        if all(indexes[f] is not None for f in REQUIRED_MATCH_FIELDS):
            self._match_indexes = {f: i for f, i in indexes.items() if i is not None}
            logger.info("Input already carries medication matches; they will be reused")
        else:
            self._match_indexes = None

    # -- lifecycle ---------------------------------------------------------

    async def prepare(self, cancellation: CancellationToken) -> None:
        self._reset()

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        if self._report_index is None:
            self._bind_headers(ctx.headers)
        self._target_index = ctx.target_index

        report_number = ctx.row[self._report_index]
        group = self._group

        if group is not None and group.report_number != report_number:
            async for row in self._validate_group(group, cancellation):
                yield row
            self._closed_reports.add(group.report_number)
            group = None

        if group is None:
            if report_number in self._closed_reports:
                raise InputFormatError(
                    f"Rows of report '{report_number}' are not contiguous",
                    row_index=ctx.row_number,
                    field=self.report_number_header,
                )
            group = _ReportGroup(report_number=report_number, first_row_number=ctx.row_number)
            self._group = group

        group.rows.append(list(ctx.row))
        if self._match_indexes is not None:
            group.existing_matches.append(self._read_match(ctx))

    async def finish(self, cancellation: CancellationToken) -> AsyncIterator[list[str]]:
        group, self._group = self._group, None
        if group is not None:
            async for row in self._validate_group(group, cancellation):
                yield row
            self._closed_reports.add(group.report_number)

    # -- internals ---------------------------------------------------------

    def _read_match(self, ctx: RowContext) -> MedicationMatch:
        assert self._match_indexes is not None and self._medication_index is not None
        values = {f: ctx.row[i] for f, i in self._match_indexes.items()}
        try:
            return MedicationMatch(
                start_index=int(values["StartIndex"]),
                length=int(values["Length"]),
                match_in_text=values["MatchInText"],
                extracted_medication=ctx.row[self._medication_index],
                experiment_result=ExperimentResult(values["ExperimentResult"].strip()),
                corrected_medication=values.get("CorrectedMedication") or None,
            )
        except ValueError as exc:
            raise InputFormatError(
                f"Invalid medication match values: {exc}",
                row_index=ctx.row_number,
            ) from exc

    async def _validate_group(
        self, group: _ReportGroup, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        assert self._medication_index is not None and self._target_index is not None
        first_row = group.rows[0]
        text = first_row[self._target_index]

        # First row per medication; later duplicates are ignored
        rows_by_medication: dict[str, list[str]] = {}
        for row in group.rows:
            rows_by_medication.setdefault(row[self._medication_index], row)

        if self._match_indexes is not None:
            matches = list(group.existing_matches)
        else:
            matches = find_matches_by_similarity(text, list(rows_by_medication))

        result: Any = self.validation_function(text, matches, cancellation)
        if inspect.isawaitable(result):
            result = await result
        validated = list(result)
        logger.debug(
            "Report %s (row %d): %d match(es) in, %d validated",
            group.report_number, group.first_row_number, len(matches), len(validated),
        )

        for match in validated:
            cancellation.raise_if_cancelled()
            yield self._build_row(first_row, rows_by_medication.get(match.extracted_medication), match)

    def _build_row(
        self,
        first_row: list[str],
        medication_row: list[str] | None,
        match: MedicationMatch,
    ) -> list[str]:
        index = self._medication_index
        assert index is not None
        if medication_row is not None:
            tail = medication_row[index + 1:]
        else:
            tail = [""] * (len(first_row) - index - 1)
        return first_row[:index] + [match.extracted_medication] + tail + match_values(match)
