"""MeasurementsExtractor — spirometry measurements (FEV1, FVC, ...) from report text."""

from __future__ import annotations

import bisect
import html
import re
from typing import AsyncIterator, Iterator, Optional, Sequence

from ..core.cancellation import CancellationToken
from ..matching.analyzers import find_ignore_case
from ..schemas.extraction import Measurement, MeasurementsData
from ..utils.logger import get_logger
from .base import RowContext, build_output_row, collation_key, single_line
from .llm import ExtractionClient

logger = get_logger(__name__)

SYSTEM_PROMPT = """\
You are meant to parse any medical data sent to you in SPANISH.
Follow STRICTLY these instructions by order priority:
- ONLY return the names, values and units of measurements you find AS IS. \
Don't try to analyze any other context around them. If you see: "FEV1: 50%" \
or "FVC: 5000ml" or "FEV1/FVC 65%", then that data SHOULD be included, \
regardless of the origin or correctness. For now, we are just trying to \
extract these values, not evaluate them.
- Notice that the same measurement might be included in multiple different \
units (i.e: ml and %). You should include both of them in different objects. \
We want all possible representations of measurements, even if it looks \
redundant. For example, if you have 2 FEV1 measurements in ml and %, and then \
2 FVC measurements, also in ml and %, you would end up with 4 JSON objects, 2 \
for the 2 FEV1 measurements, and another 2 for the other 2 FVC measurements.
- If the text is blank, return an empty JSON object.
- The JSON format should be: { "Measurements": [{"Type": <Name of the \
measurement>, "Value": <number WITHOUT the Unit>, "Unit": <"%" or "l" or "ml" \
(it should be present AFTER THE NUMBER... if it's not, set it to null>} ] }"""

DEFAULT_MEASUREMENTS = ["FEV1/FVC", "FEV1", "FVC", "DLCO", "KCO"]

SEARCHED_TEXT_SEPARATOR = "|"

_FEV1_SPELLINGS = re.compile(r"FEV 1|FEVI")
_DIGIT = re.compile(r"\d")


def normalize_text(text: str) -> str:
    """Unify FEV1 spellings and drop carriage returns."""
    return _FEV1_SPELLINGS.sub("FEV1", text).replace("\r", "")


def deduce_missing_unit(value: float) -> str:
    """Guess a unit from the magnitude: litres, percent or millilitres."""
    if value < 15:
        return "l"
    if value < 100:
        return "%"
    return "ml"


def format_value(value: float, decimal_separator: str = ".") -> str:
    text = str(int(value)) if value.is_integer() else repr(value)
    return text.replace(".", decimal_separator)


def _in_occupied_span(index: int, boundaries: list[int]) -> bool:
    for i in range(0, len(boundaries), 2):
        if boundaries[i] <= index < boundaries[i + 1]:
            return True
    return False


def extract_segments_from_line(line: str, keywords: Sequence[str]) -> Iterator[str]:
    """Yield the pieces of *line* that start with a keyword and contain a value.

    *keywords* must be ordered longest first so that ``FEV1/FVC`` claims
    its span before ``FEV1`` or ``FVC`` can. Each piece runs from a keyword
    to the start of the next one (or the end of the line) and is kept only
    when a digit follows the keyword.
    """
    boundaries: list[int] = []
    for keyword in keywords:
        start = 0
        while True:
            index = find_ignore_case(line, keyword, start)
            if index < 0:
                break
            end = index + len(keyword)
            if not _in_occupied_span(index, boundaries):
                bisect.insort(boundaries, index)
                bisect.insort(boundaries, end)
            start = end

    for i in range(0, len(boundaries) - 1, 2):
        start, keyword_end = boundaries[i], boundaries[i + 1]
        end = boundaries[i + 2] if i + 2 < len(boundaries) else len(line)
        if _DIGIT.search(line, keyword_end, end):
            yield line[start:end].strip()


def extract_segments(text: str, keywords: Sequence[str]) -> list[str]:
    ordered = sorted(keywords, key=len, reverse=True)
    segments: list[str] = []
    for line in text.split("\n"):
        segments.extend(extract_segments_from_line(line, ordered))
    return segments


class MeasurementsExtractor:
    """Extracts measurements with the service, one output row per measurement.

    When ``measurements_to_look_for`` is set, only the line segments that
    mention one of those keywords are sent (one call per segment), and rows
    without any such segment are skipped. Output columns: the searched
    text, the measurement type, its value and its unit.
    """

    name = "measurements"
    additional_output_column_count = 4
    default_output_headers = ["T-Searched", "Type", "Value", "Unit"]
    default_target_header: Optional[str] = "T"
    requires_target_column = True

    def __init__(
        self,
        extraction_client: ExtractionClient,
        measurements_to_look_for: Sequence[str] | None = tuple(DEFAULT_MEASUREMENTS),
        decode_html: bool = False,
        decimal_separator: str = ".",
        system_prompt: str | None = None,
    ):
        self.extraction_client = extraction_client
        self.measurements_to_look_for = (
            list(measurements_to_look_for) if measurements_to_look_for else None
        )
        self.decode_html = decode_html
        self.decimal_separator = decimal_separator
        self.system_prompt = system_prompt or SYSTEM_PROMPT

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        text = ctx.target_text
        if self.decode_html:
            text = html.unescape(text)
        text = normalize_text(text)

        if self.measurements_to_look_for is None:
            segments = [text]
        else:
            segments = extract_segments(text, self.measurements_to_look_for)
            if not segments:
                logger.warning(
                    "Row %d: no line mentions any of %s",
                    ctx.row_number, ", ".join(self.measurements_to_look_for),
                )
                return

        measurements: list[Measurement] = []
        for segment in segments:
            result = await self.extraction_client.extract(
                segment, MeasurementsData, self.system_prompt, cancellation,
            )
            if result is None:
                logger.warning("Row %d: no measurements found in segment: %s", ctx.row_number, segment)
                continue
            measurements.extend(result.Measurements)

        if not measurements:
            logger.warning("No measurements found in row %d", ctx.row_number)
            return

        row = list(ctx.row)
        if not ctx.overwrite:
            row[ctx.target_index] = single_line(text)
        searched = SEARCHED_TEXT_SEPARATOR.join(segments)

        for measurement in sorted(measurements, key=lambda m: collation_key(m.Type)):
            unit = measurement.Unit or deduce_missing_unit(measurement.Value)
            values = [
                single_line(searched),
                measurement.Type,
                format_value(measurement.Value, self.decimal_separator),
                unit,
            ]
            yield build_output_row(row, ctx.target_index, values, ctx.overwrite)
