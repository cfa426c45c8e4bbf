"""Tests for the DataParser streaming engine."""

from __future__ import annotations

import logging
from typing import AsyncIterator

import pytest

from medextract.core.cancellation import CancellationToken
from medextract.core.config import ParserConfig
from medextract.core.exceptions import (
    ColumnNotFoundError,
    ConfigurationError,
    ExtractionError,
    OutputHeaderCountMismatchError,
)
from medextract.pipeline.parser import DataParser
from medextract.steps.base import RowContext, build_output_row


class EchoEnricher:
    """Adds the upper-cased target text as one column."""

    name = "echo"
    additional_output_column_count = 1
    default_output_headers = ["Upper"]
    default_target_header = "T"
    requires_target_column = True

    def __init__(self, fail_on_row=None, cancel_on_row=None, error=None):
        self.fail_on_row = fail_on_row
        self.cancel_on_row = cancel_on_row
        self.error = error or ExtractionError("service gave up")
        self.prepared = False

    async def prepare(self, cancellation):
        self.prepared = True

    async def transform(self, ctx: RowContext, cancellation: CancellationToken) -> AsyncIterator[list[str]]:
        if ctx.row_number == self.fail_on_row:
            raise self.error
        if ctx.row_number == self.cancel_on_row:
            cancellation.cancel()
        yield build_output_row(ctx.row, ctx.target_index, [ctx.target_text.upper()], ctx.overwrite)


class WordsEnricher:
    """One output row per word of the target text (none for blank text)."""

    name = "words"
    additional_output_column_count = 1
    default_output_headers = ["Word"]
    default_target_header = "T"
    requires_target_column = True

    async def transform(self, ctx, cancellation):
        for word in ctx.target_text.split():
            yield list(ctx.row) + [word]


class ReverseEnricher:
    """Buffers every row and emits them reversed at the end."""

    name = "reverse"
    additional_output_column_count = 0
    default_output_headers: list[str] = []
    default_target_header = None
    requires_target_column = False

    def __init__(self):
        self.rows: list[list[str]] = []

    async def transform(self, ctx, cancellation):
        self.rows.append(list(ctx.row))
        return
        yield

    async def finish(self, cancellation):
        for row in reversed(self.rows):
            yield row


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "input.csv"
    path.write_text("Id;T\n1;hola\n2;adios\n3;\n4;buenas tardes\n", encoding="utf-8")
    return path


def _config(input_file, tmp_path, **kwargs):
    return ParserConfig(input_file=input_file, output_file=tmp_path / "out.csv", **kwargs)


def _output(tmp_path) -> str:
    return (tmp_path / "out.csv").read_text(encoding="utf-8")


class TestDataParser:
    def test_appends_column(self, input_file, tmp_path):
        enricher = EchoEnricher()
        result = DataParser(enricher, _config(input_file, tmp_path)).run()

        assert enricher.prepared is True
        assert result.rows_read == 4
        assert result.rows_written == 4
        assert result.output_headers == ["Id", "T", "Upper"]
        assert not result.cancelled
        assert _output(tmp_path) == (
            "Id;T;Upper\n1;hola;HOLA\n2;adios;ADIOS\n3;;\n4;buenas tardes;BUENAS TARDES\n"
        )

    def test_overwrites_target_column(self, tmp_path):
        src = tmp_path / "input.csv"
        src.write_text("Id;T;Extra\n1;hola;x\n", encoding="utf-8")
        config = _config(src, tmp_path, overwrite_input_column=True)

        result = DataParser(EchoEnricher(), config).run()

        assert result.output_headers == ["Id", "Upper", "Extra"]
        assert _output(tmp_path) == "Id;Upper;Extra\n1;HOLA;x\n"

    def test_target_column_lookup_ignores_case(self, input_file, tmp_path):
        config = _config(input_file, tmp_path, input_target_column="t")
        result = DataParser(EchoEnricher(), config).run()
        assert result.rows_written == 4

    def test_colliding_header_is_renamed(self, input_file, tmp_path):
        config = _config(input_file, tmp_path, output_additional_headers=["T"])
        result = DataParser(EchoEnricher(), config).run()
        assert result.output_headers == ["Id", "T", "T1"]

    def test_missing_target_column(self, input_file, tmp_path):
        config = _config(input_file, tmp_path, input_target_column="Texto")
        with pytest.raises(ColumnNotFoundError) as excinfo:
            DataParser(EchoEnricher(), config).run()
        assert excinfo.value.field == "Texto"
        assert not (tmp_path / "out.csv").exists()

    def test_header_count_mismatch(self, input_file, tmp_path):
        config = _config(input_file, tmp_path, output_additional_headers=["A", "B"])
        with pytest.raises(OutputHeaderCountMismatchError):
            DataParser(EchoEnricher(), config).run()
        assert not (tmp_path / "out.csv").exists()

    def test_missing_input_file(self, tmp_path):
        config = _config(tmp_path / "missing.csv", tmp_path)
        with pytest.raises(FileNotFoundError):
            DataParser(EchoEnricher(), config).run()

    def test_rejects_non_enricher(self, input_file, tmp_path):
        with pytest.raises(ConfigurationError):
            DataParser(object(), _config(input_file, tmp_path))  # type: ignore[arg-type]

    def test_rows_expand_and_vanish(self, input_file, tmp_path):
        result = DataParser(WordsEnricher(), _config(input_file, tmp_path)).run()

        assert result.rows_read == 4
        assert result.rows_written == 5
        assert _output(tmp_path) == (
            "Id;T;Word\n"
            "1;hola;hola\n"
            "2;adios;adios\n"
            "4;buenas tardes;buenas\n"
            "4;buenas tardes;tardes\n"
        )

    def test_finish_rows_are_written(self, input_file, tmp_path):
        result = DataParser(ReverseEnricher(), _config(input_file, tmp_path)).run()

        assert result.rows_written == 4
        assert _output(tmp_path).splitlines()[1:] == ["4;buenas tardes", "3;", "2;adios", "1;hola"]

    def test_row_limit_and_progress(self, input_file, tmp_path):
        seen = []
        config = _config(input_file, tmp_path, row_limit=2, progress_callback=seen.append)

        result = DataParser(EchoEnricher(), config).run()

        assert result.rows_read == 2
        assert _output(tmp_path) == "Id;T;Upper\n1;hola;HOLA\n2;adios;ADIOS\n"
        assert [p.value for p in seen] == [0.5, 1.0, 1.0]
        assert [p.rows_processed for p in seen] == [1, 2, None]

    def test_progress_without_limit_is_monotonic(self, input_file, tmp_path):
        seen = []
        config = _config(input_file, tmp_path, progress_callback=seen.append)

        DataParser(EchoEnricher(), config).run()

        values = [p.value for p in seen]
        assert values == sorted(values)
        assert values[-1] == 1.0
        assert all(0.0 <= v <= 1.0 for v in values)

    def test_failing_progress_callback_does_not_stop_run(self, input_file, tmp_path, caplog):
        def broken(_value):
            raise RuntimeError("boom")

        config = _config(input_file, tmp_path, progress_callback=broken)
        with caplog.at_level(logging.WARNING, logger="medextract"):
            result = DataParser(EchoEnricher(), config).run()

        assert result.rows_written == 4
        assert "Progress callback" in caplog.text

    def test_cancellation_keeps_partial_output(self, input_file, tmp_path):
        result = DataParser(EchoEnricher(cancel_on_row=2), _config(input_file, tmp_path)).run()

        assert result.cancelled is True
        assert result.rows_written == 1
        assert _output(tmp_path) == "Id;T;Upper\n1;hola;HOLA\n"

    def test_cancelled_before_start_writes_header_only(self, input_file, tmp_path):
        token = CancellationToken()
        token.cancel()

        result = DataParser(EchoEnricher(), _config(input_file, tmp_path)).run(token)

        assert result.cancelled is True
        assert result.rows_written == 0
        assert _output(tmp_path) == "Id;T;Upper\n"

    def test_enricher_failure_keeps_written_rows(self, input_file, tmp_path):
        with pytest.raises(ExtractionError):
            DataParser(EchoEnricher(fail_on_row=3), _config(input_file, tmp_path)).run()

        assert _output(tmp_path) == "Id;T;Upper\n1;hola;HOLA\n2;adios;ADIOS\n"

    def test_unexpected_error_is_logged_and_raised(self, input_file, tmp_path, caplog):
        enricher = EchoEnricher(fail_on_row=2, error=ValueError("bad value"))
        with caplog.at_level(logging.ERROR, logger="medextract"):
            with pytest.raises(ValueError):
                DataParser(enricher, _config(input_file, tmp_path)).run()

        assert "after row 1" in caplog.text

    @pytest.mark.asyncio
    async def test_run_refuses_inside_event_loop(self, input_file, tmp_path):
        parser = DataParser(EchoEnricher(), _config(input_file, tmp_path))
        with pytest.raises(RuntimeError, match="parse_data"):
            parser.run()

    @pytest.mark.asyncio
    async def test_parse_data_async(self, input_file, tmp_path):
        parser = DataParser(EchoEnricher(), _config(input_file, tmp_path))
        result = await parser.parse_data()
        assert result.rows_written == 4
