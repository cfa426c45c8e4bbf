"""FEV1 percentages found by pattern match, without calling the extraction service."""

from __future__ import annotations

import html
import re
from typing import AsyncIterator, Iterator, Optional

from ..core.cancellation import CancellationToken
from ..utils.logger import get_logger
from .base import RowContext, build_output_row, single_line
from .measurements import deduce_missing_unit, format_value, normalize_text

logger = get_logger(__name__)

# "FEV1 65%", "FEV1: 65,5 %", "FEV1 (%) 70", "FEV1 = 2,1 l" (the latter is not a percentage)
FEV1_PATTERN = re.compile(
    r"\bFEV1(?!\s*/)\s*(?:\(\s*%\s*\))?\s*[:=]?\s*(?P<value>\d+(?:[.,]\d+)?)\s*(?P<unit>%|ml|l)?(?![a-z])",
    re.IGNORECASE,
)


def find_fev1_percentages(text: str) -> Iterator[float]:
    """Yield every FEV1 value in *text* that is (or looks like) a percentage."""
    for match in FEV1_PATTERN.finditer(text):
        value = float(match.group("value").replace(",", "."))
        unit = (match.group("unit") or "").lower()
        header_says_percent = "%" in match.group(0)[: match.start("value") - match.start()]
        if not unit:
            unit = "%" if header_says_percent else deduce_missing_unit(value)
        if unit == "%":
            yield value


class SimpleMeasurementsExtractor:
    """Emits one row per FEV1 (%) value found in the target text."""

    name = "simple-measurements"
    additional_output_column_count = 1
    default_output_headers = ["FEV1 (%)"]
    default_target_header: Optional[str] = "T"
    requires_target_column = True

    def __init__(self, decode_html: bool = False, decimal_separator: str = "."):
        self.decode_html = decode_html
        self.decimal_separator = decimal_separator

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        text = ctx.target_text
        if self.decode_html:
            text = html.unescape(text)
        text = normalize_text(text)

        values = list(find_fev1_percentages(text))
        if not values:
            logger.warning("No FEV1 (%%) measurements found in row %d", ctx.row_number)
            return

        row = list(ctx.row)
        if not ctx.overwrite:
            row[ctx.target_index] = single_line(text)
        for value in values:
            yield build_output_row(
                row, ctx.target_index, [format_value(value, self.decimal_separator)], ctx.overwrite,
            )
