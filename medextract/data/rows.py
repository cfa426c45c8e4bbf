"""Lazy row-oriented CSV reading and writing on top of pandas.

``RowReader`` pulls the file through ``pd.read_csv`` in chunks, so only
one chunk is ever in memory, and counts the raw bytes consumed so progress
can be estimated without knowing the number of rows. ``RowWriter`` appends
rows to an open handle in small batches and flushes after every batch,
so whatever was written survives a cancelled or failed run.
"""

from __future__ import annotations

import io
import os
from collections import deque
from pathlib import Path
from typing import Any, Iterator

import pandas as pd

from ..core.exceptions import InputFormatError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CountingReader(io.RawIOBase):
    """Raw binary stream that counts the bytes read from *raw*."""

    def __init__(self, raw: Any):
        self._raw = raw
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        n = self._raw.readinto(buffer)
        if n:
            self.bytes_read += n
        return n or 0

    def close(self) -> None:
        self._raw.close()
        super().close()


class RowReader:
    """Single-pass reader yielding rows as lists of strings.

    Use as a context manager::

        with RowReader(path, delimiter=";") as reader:
            headers = reader.headers
            for row in reader.rows():
                ...
    """

    def __init__(
        self,
        path: str | Path,
        delimiter: str = ",",
        encoding: str = "utf-8",
        chunk_size: int = 1000,
    ):
        self.path = Path(path)
        self.delimiter = delimiter
        self.encoding = encoding
        self.chunk_size = chunk_size
        self.total_bytes = 0
        self.headers: list[str] = []
        self._counter: CountingReader | None = None
        self._stream: io.BufferedReader | None = None
        self._chunks: Iterator[pd.DataFrame] | None = None
        self._pending: deque[list[str]] = deque()
        self._line_number = 0

    # -- context management --------------------------------------------------

    def __enter__(self) -> "RowReader":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def open(self) -> None:
        """Open the file and read the header row."""
        try:
            raw = open(self.path, "rb", buffering=0)
        except FileNotFoundError:
            logger.error("Input file not found: %s", self.path)
            raise
        self.total_bytes = os.fstat(raw.fileno()).st_size
        self._counter = CountingReader(raw)
        self._stream = io.BufferedReader(self._counter)

        try:
            self._chunks = iter(
                pd.read_csv(
                    self._stream,
                    sep=self.delimiter,
                    header=None,
                    dtype=str,
                    keep_default_na=False,
                    na_values=[],
                    encoding=self.encoding,
                    chunksize=self.chunk_size,
                )
            )
            first = self._next_chunk()
        except pd.errors.EmptyDataError as exc:
            self.close()
            raise InputFormatError(f"Input file has no header row: {self.path}") from exc
        except Exception:
            self.close()
            raise

        if not first:
            self.close()
            raise InputFormatError(f"Input file has no header row: {self.path}")

        self.headers = first[0]
        self._pending = deque(first[1:])
        self._line_number = 1
        logger.debug("Read header from %s: %s", self.path, self.headers)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
            self._counter = None

    # -- reading ---------------------------------------------------------------

    @property
    def bytes_read(self) -> int:
        return self._counter.bytes_read if self._counter is not None else self.total_bytes

    @property
    def fraction_read(self) -> float:
        if self.total_bytes <= 0:
            return 1.0
        return min(self.bytes_read / self.total_bytes, 1.0)

    def rows(self) -> Iterator[list[str]]:
        """Yield the data rows (the header is not included)."""
        while True:
            while self._pending:
                self._line_number += 1
                yield self._pending.popleft()
            chunk = self._next_chunk()
            if chunk is None:
                return
            self._pending = deque(chunk)

    def _next_chunk(self) -> list[list[str]] | None:
        assert self._chunks is not None
        try:
            frame = next(self._chunks)
        except StopIteration:
            return None
        except pd.errors.ParserError as exc:
            raise InputFormatError(f"Malformed input in {self.path}: {exc}") from exc
        except UnicodeDecodeError:
            logger.error(
                "Could not decode %s as %s", self.path, self.encoding,
            )
            raise

        rows = frame.values.tolist()
        for offset, row in enumerate(rows):
            if any(not isinstance(value, str) for value in row):
                line = self._line_number + offset + 1
                raise InputFormatError(
                    f"Line {line} has fewer fields than the header"
                )
        return rows


class RowWriter:
    """Buffered CSV writer that flushes every *batch_size* rows."""

    def __init__(self, path: str | Path, delimiter: str = ",", batch_size: int = 1):
        self.path = Path(path)
        self.delimiter = delimiter
        self.batch_size = batch_size
        self.rows_written = 0
        self._handle: Any = None
        self._batch: list[list[str]] = []

    def __enter__(self) -> "RowWriter":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, "w", encoding="utf-8", newline="")

    def write_header(self, headers: list[str]) -> None:
        self._write_frame([list(headers)])

    def write_row(self, row: list[str]) -> None:
        self._batch.append(list(row))
        self.rows_written += 1
        if len(self._batch) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if self._batch:
            self._write_frame(self._batch)
            self._batch = []

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self.flush()
        finally:
            self._handle.close()
            self._handle = None

    def _write_frame(self, rows: list[list[str]]) -> None:
        pd.DataFrame(rows).to_csv(
            self._handle,
            sep=self.delimiter,
            header=False,
            index=False,
            lineterminator="\n",
        )
        self._handle.flush()
