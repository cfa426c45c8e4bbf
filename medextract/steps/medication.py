"""MedicationExtractor — one output row per medication named in the text."""

from __future__ import annotations

import html
from typing import AsyncIterator, Optional

from ..core.cancellation import CancellationToken
from ..schemas.extraction import MedicationsList
from ..utils.logger import get_logger
from .base import RowContext, build_output_row, collation_key, single_line
from .llm import ExtractionClient

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are meant to parse any medical data sent to you in SPANISH.
Follow STRICTLY these instructions by order priority:
- ONLY return the names of any medication you find AS IS, don't say anything more.
- If the text is blank, don't say anything, just send a blank message.
- The JSON format should be: { "Medicamentos": [ ] }"""


class MedicationExtractor:
    """Asks the extraction service for the medications in the target text.

    Rows for one input row are emitted in alphabetical order. In append
    mode the target text is collapsed onto a single line in every row.
    """

    name = "medications"
    additional_output_column_count = 1
    default_output_headers = ["Medication"]
    default_target_header: Optional[str] = "T"
    requires_target_column = True

    def __init__(
        self,
        extraction_client: ExtractionClient,
        system_prompt: str | None = None,
        decode_html: bool = False,
    ):
        self.extraction_client = extraction_client
        self.system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.decode_html = decode_html

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        text = ctx.target_text
        if self.decode_html:
            text = html.unescape(text)

        result = await self.extraction_client.extract(
            text, MedicationsList, self.system_prompt, cancellation,
        )
        if result is None:
            logger.warning("No medications found in row %d: %s", ctx.row_number, single_line(text))
            return

        row = list(ctx.row)
        if not ctx.overwrite:
            row[ctx.target_index] = single_line(text)

        for medication in sorted(result.Medicamentos, key=collation_key):
            yield build_output_row(row, ctx.target_index, [medication], ctx.overwrite)
