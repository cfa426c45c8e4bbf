"""Re-encode input files to UTF-8 before parsing."""

from __future__ import annotations

from pathlib import Path

from ..core.cancellation import CancellationToken
from ..utils.logger import get_logger

logger = get_logger(__name__)


def convert_file_encoding(
    input_file: str | Path,
    output_file: str | Path,
    source_encoding: str = "ISO-8859-1",
    cancellation: CancellationToken | None = None,
) -> int:
    """Copy *input_file* to *output_file*, transcoding it to UTF-8.

    The file is streamed line by line; line endings are kept as they are.

    Returns:
        Number of lines written.
    """
    lines = 0
    with open(input_file, "r", encoding=source_encoding, newline="") as src, \
            open(output_file, "w", encoding="utf-8", newline="") as dst:
        for line in src:
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            dst.write(line)
            lines += 1
    logger.info("Converted %s (%s) to UTF-8: %d line(s)", input_file, source_encoding, lines)
    return lines
