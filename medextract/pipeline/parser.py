"""DataParser — streaming row-by-row transformation of a delimited file."""

from __future__ import annotations

import asyncio
import time as _time
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from ..core.cancellation import CancellationToken
from ..core.config import ParserConfig
from ..core.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    EnrichmentError,
    OperationCancelledError,
)
from ..core.headers import find_column_index, reconcile_headers
from ..core.progress import ProgressReporter
from ..data.rows import RowReader, RowWriter
from ..steps.base import RowContext, RowEnricher
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ParseResult:
    """Result from DataParser.run() / DataParser.parse_data().

    Attributes:
        rows_read: Input rows consumed (header excluded).
        rows_written: Output rows written (header excluded).
        output_headers: Header row of the output file.
        cancelled: True if the run stopped because of its cancellation token.
        elapsed_seconds: Wall-clock duration of the run.
    """

    rows_read: int = 0
    rows_written: int = 0
    output_headers: list[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0


class DataParser:
    """Reads the input lazily, runs every row through an enricher and
    writes the output as rows are produced.

    The whole file is never held in memory (unless the enricher itself
    buffers rows), and every written row stays on disk if the run is
    cancelled or fails.
    """

    def __init__(self, enricher: RowEnricher, config: ParserConfig):
        """Bind an enricher to a run configuration.

        Args:
            enricher: Any object satisfying the :class:`RowEnricher` protocol.
            config: Files, CSV dialect, columns and progress settings.

        Raises:
            ConfigurationError: If *enricher* doesn't satisfy the protocol or
                the configuration asks for something it can't do.
        """
        if not isinstance(enricher, RowEnricher):
            raise ConfigurationError(
                f"{type(enricher).__name__} does not implement the RowEnricher protocol"
            )
        if config.overwrite_input_column and not getattr(enricher, "supports_overwrite", True):
            raise ConfigurationError(
                f"The '{enricher.name}' parser does not support overwriting the input column"
            )
        self.enricher = enricher
        self.config = config

    # -- public helpers --------------------------------------------------

    @property
    def target_header(self) -> Optional[str]:
        """Configured target column, or the enricher's default."""
        return self.config.input_target_column or self.enricher.default_target_header

    @property
    def additional_headers(self) -> list[str]:
        """Configured additional headers, or the enricher's defaults."""
        if self.config.output_additional_headers is not None:
            return list(self.config.output_additional_headers)
        return list(self.enricher.default_output_headers)

    def resolve_target_index(self, headers: list[str]) -> Optional[int]:
        """Locate the target column in *headers*.

        Raises:
            ColumnNotFoundError: If the enricher needs a target column and
                it is missing.
        """
        name = self.target_header
        index = find_column_index(headers, name) if name else None
        if index is None and self.enricher.requires_target_column:
            raise ColumnNotFoundError(name or "", headers)
        return index

    # -- primary API -----------------------------------------------------

    def run(self, cancellation: CancellationToken | None = None) -> ParseResult:
        """Synchronous entry point.

        Raises ``RuntimeError`` if called from inside a running event loop
        (use ``await parser.parse_data()`` in that case).
        """
        try:
            asyncio.get_running_loop()
            raise RuntimeError(
                "DataParser.run() cannot be called from inside an async context. "
                "Use 'await parser.parse_data(...)' instead."
            )
        except RuntimeError as exc:
            if "parse_data" in str(exc):
                raise
        return asyncio.run(self.parse_data(cancellation))

    async def parse_data(self, cancellation: CancellationToken | None = None) -> ParseResult:
        """Async entry point: ``await parser.parse_data()``.

        Returns:
            A :class:`ParseResult`; ``cancelled`` is True when the token
            stopped the run (partial output is kept).

        Raises:
            FileNotFoundError: The input file doesn't exist.
            ConfigurationError: Missing target column or wrong number of
                output headers (raised before any row is written).
            InputFormatError: Malformed input rows.
            UnicodeDecodeError: The input isn't in the configured encoding.
            LLMAPIError / ExtractionError: The extraction service failed
                for good.
        """
        cancellation = cancellation or CancellationToken()
        config = self.config
        result = ParseResult()
        progress = ProgressReporter(
            callback=config.progress_callback,
            show_bar=config.enable_progress_bar,
            desc=self.enricher.name,
        )
        started = _time.monotonic()
        current_row = 0

        logger.info(
            "Starting '%s' parse: %s -> %s", self.enricher.name, config.input_file, config.output_file,
        )

        try:
            prepare = getattr(self.enricher, "prepare", None)
            if prepare is not None:
                await prepare(cancellation)

            with RowReader(
                config.input_file,
                delimiter=config.field_delimiter,
                encoding=config.encoding,
                chunk_size=config.read_chunk_size,
            ) as reader:
                headers = reader.headers
                target_index = self.resolve_target_index(headers)
                output_headers, _ = reconcile_headers(
                    headers,
                    self.additional_headers,
                    target_index,
                    config.overwrite_input_column,
                    self.enricher.additional_output_column_count,
                )
                result.output_headers = output_headers

                with RowWriter(
                    config.output_file,
                    delimiter=config.field_delimiter,
                    batch_size=config.write_batch_size,
                ) as writer:
                    writer.write_header(output_headers)

                    async for row_number, out_row in self._output_rows(
                        reader, headers, target_index, progress, result, cancellation,
                    ):
                        current_row = row_number
                        writer.write_row(out_row)
                        result.rows_written += 1

            progress.complete()
            logger.info(
                "Data parsing completed: %d row(s) read, %d row(s) written",
                result.rows_read, result.rows_written,
            )

        except OperationCancelledError:
            result.cancelled = True
            logger.warning(
                "Data parsing was cancelled after %d row(s) read, %d row(s) written",
                result.rows_read, result.rows_written,
            )
        except EnrichmentError as exc:
            logger.error("Data parsing failed: %s", exc)
            raise
        except (FileNotFoundError, UnicodeDecodeError):
            # Logged where detected
            raise
        except Exception:
            logger.error(
                "Unexpected error while parsing %s after row %d", config.input_file, current_row,
                exc_info=True,
            )
            raise
        finally:
            progress.close()
            result.elapsed_seconds = _time.monotonic() - started

        return result

    # -- internals -------------------------------------------------------

    async def _output_rows(
        self,
        reader: RowReader,
        headers: list[str],
        target_index: Optional[int],
        progress: ProgressReporter,
        result: ParseResult,
        cancellation: CancellationToken,
    ) -> AsyncIterator[tuple[int, list[str]]]:
        """Yield ``(input row number, output row)`` pairs in output order."""
        config = self.config
        limit = config.row_limit
        header_tuple = tuple(headers)
        row_number = 0

        for row in reader.rows():
            cancellation.raise_if_cancelled()
            row_number += 1
            ctx = RowContext(
                row=tuple(row),
                row_number=row_number,
                target_index=target_index,
                headers=header_tuple,
                overwrite=config.overwrite_input_column,
            )
            logger.debug("Processing row %d", row_number)

            async for out_row in self.enricher.transform(ctx, cancellation):
                cancellation.raise_if_cancelled()
                yield row_number, out_row

            result.rows_read = row_number
            if limit is None:
                progress.report(reader.fraction_read, rows_processed=row_number)
            else:
                progress.report(row_number / limit, rows_processed=row_number)

            if limit is not None and row_number >= limit:
                break

        finish = getattr(self.enricher, "finish", None)
        if finish is not None:
            async for out_row in finish(cancellation):
                cancellation.raise_if_cancelled()
                yield row_number, out_row
