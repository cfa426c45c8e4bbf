"""Command-line interface for medextract."""

from __future__ import annotations

import signal
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from .core.cancellation import CancellationToken
from .core.config import ApiConfig, ParserConfig
from .core.exceptions import EnrichmentError
from .data.encoding import convert_file_encoding
from .matching.models import ExperimentResult, MedicationMatch
from .pipeline.parser import DataParser, ParseResult
from .steps.base import RowEnricher
from .steps.grouping import MedicationGroupMapper
from .steps.llm import ExtractionClient
from .steps.manual_validation import ManualValidator, accept_all
from .steps.measurements import DEFAULT_MEASUREMENTS, MeasurementsExtractor
from .steps.medication import MedicationExtractor
from .steps.providers.base import LLMAPIError
from .steps.sampler import DEFAULT_SAMPLE_SIZE, DEFAULT_SEED, RandomSampler
from .steps.simple_measurements import SimpleMeasurementsExtractor
from .utils.logger import setup_logging

app = typer.Typer(
    name="medextract",
    help="Extract medications and clinical measurements from CSV reports",
    no_args_is_help=True,
)


# =============================================================================
# Shared options
# =============================================================================

InputArg = typer.Argument(..., exists=True, dir_okay=False, help="Input CSV file")
OutputArg = typer.Argument(..., dir_okay=False, help="Output CSV file")
CultureOpt = typer.Option("es-ES", "--culture", help="Locale for delimiter and decimal separator")
EncodingOpt = typer.Option("utf-8", "--encoding", help="Input file encoding")
TargetOpt = typer.Option(None, "--target-column", "-t", help="Header of the text column")
HeadersOpt = typer.Option(None, "--header", "-H", help="Output header (repeat for each added column)")
OverwriteOpt = typer.Option(False, "--overwrite", help="Replace the target column instead of appending")
LimitOpt = typer.Option(None, "--limit", "-n", min=1, help="Stop after this many input rows")
LogLevelOpt = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR")
LogDirOpt = typer.Option(None, "--log-dir", help="Also write logs to this directory")
ProgressOpt = typer.Option(True, "--progress/--no-progress", help="Show a progress bar")


def _parser_config(
    input_file: Path,
    output_file: Path,
    culture: str,
    encoding: str,
    target_column: Optional[str],
    headers: Optional[list[str]],
    overwrite: bool,
    limit: Optional[int],
    log_level: str,
    log_dir: Optional[str],
    progress: bool,
) -> ParserConfig:
    setup_logging(log_level, log_dir=log_dir)
    try:
        return ParserConfig(
            input_file=input_file,
            output_file=output_file,
            culture_name=culture,
            encoding=encoding,
            input_target_column=target_column,
            output_additional_headers=headers or None,
            overwrite_input_column=overwrite,
            row_limit=limit,
            enable_progress_bar=progress,
            log_level=log_level,
            log_dir=log_dir,
        )
    except ValueError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(2)


def _api_config(model: Optional[str], api_url: Optional[str], provider: Optional[str], strict: bool) -> ApiConfig:
    load_dotenv()
    try:
        return ApiConfig.from_env(
            model=model,
            base_url=api_url,
            provider=provider,
            retry_on_invalid_response=None if strict else False,
        )
    except ValueError as exc:
        typer.echo(f"Invalid API configuration: {exc}", err=True)
        raise typer.Exit(2)


def _run(enricher: RowEnricher, config: ParserConfig) -> ParseResult:
    """Run *enricher* over the input; Ctrl+C cancels cleanly, twice aborts."""
    token = CancellationToken()
    previous = signal.getsignal(signal.SIGINT)

    def _on_interrupt(signum, frame):
        typer.echo("\nCancelling after the current row (Ctrl+C again to abort)...", err=True)
        token.cancel()
        signal.signal(signal.SIGINT, previous)

    signal.signal(signal.SIGINT, _on_interrupt)
    try:
        result = DataParser(enricher, config).run(token)
    except (EnrichmentError, LLMAPIError, FileNotFoundError, UnicodeDecodeError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    status = "cancelled" if result.cancelled else "done"
    typer.echo(
        f"{status}: {result.rows_read} row(s) read, {result.rows_written} row(s) written "
        f"to {config.output_file} in {result.elapsed_seconds:.1f}s"
    )
    if result.cancelled:
        raise typer.Exit(130)
    return result


# =============================================================================
# LLM-backed commands
# =============================================================================


@app.command("medications")
def medications(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    target_column: Optional[str] = TargetOpt,
    header: Optional[list[str]] = HeadersOpt,
    overwrite: bool = OverwriteOpt,
    limit: Optional[int] = LimitOpt,
    decode_html: bool = typer.Option(False, "--decode-html", help="HTML-unescape the text first"),
    system_prompt_file: Optional[Path] = typer.Option(None, "--system-prompt", exists=True, help="File with a custom system prompt"),
    model: Optional[str] = typer.Option(None, "--model", help="Model name (default: $MEDEXTRACT_MODEL)"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Service URL (default: $MEDEXTRACT_API_URL)"),
    provider: Optional[str] = typer.Option(None, "--provider", help="ollama or openai"),
    retry_invalid: bool = typer.Option(True, "--retry-invalid/--no-retry-invalid", help="Retry malformed answers"),
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
    progress: bool = ProgressOpt,
):
    """Extract medication names, one output row per medication."""
    config = _parser_config(
        input_file, output_file, culture, encoding, target_column, header,
        overwrite, limit, log_level, log_dir, progress,
    )
    system_prompt = system_prompt_file.read_text(encoding="utf-8") if system_prompt_file else None
    client = ExtractionClient(_api_config(model, api_url, provider, retry_invalid))
    _run(MedicationExtractor(client, system_prompt=system_prompt, decode_html=decode_html), config)


@app.command("measurements")
def measurements(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    target_column: Optional[str] = TargetOpt,
    header: Optional[list[str]] = HeadersOpt,
    overwrite: bool = OverwriteOpt,
    limit: Optional[int] = LimitOpt,
    decode_html: bool = typer.Option(False, "--decode-html", help="HTML-unescape the text first"),
    keyword: Optional[list[str]] = typer.Option(None, "--keyword", "-k", help="Measurement to look for (repeatable)"),
    whole_text: bool = typer.Option(False, "--whole-text", help="Send the whole text instead of keyword segments"),
    model: Optional[str] = typer.Option(None, "--model", help="Model name (default: $MEDEXTRACT_MODEL)"),
    api_url: Optional[str] = typer.Option(None, "--api-url", help="Service URL (default: $MEDEXTRACT_API_URL)"),
    provider: Optional[str] = typer.Option(None, "--provider", help="ollama or openai"),
    retry_invalid: bool = typer.Option(True, "--retry-invalid/--no-retry-invalid", help="Retry malformed answers"),
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
    progress: bool = ProgressOpt,
):
    """Extract spirometry measurements (type, value, unit)."""
    config = _parser_config(
        input_file, output_file, culture, encoding, target_column, header,
        overwrite, limit, log_level, log_dir, progress,
    )
    keywords = None if whole_text else (keyword or DEFAULT_MEASUREMENTS)
    client = ExtractionClient(_api_config(model, api_url, provider, retry_invalid))
    enricher = MeasurementsExtractor(
        client,
        measurements_to_look_for=keywords,
        decode_html=decode_html,
        decimal_separator=config.decimal_separator,
    )
    _run(enricher, config)


# =============================================================================
# Local commands
# =============================================================================


@app.command("simple-measurements")
def simple_measurements(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    target_column: Optional[str] = TargetOpt,
    header: Optional[list[str]] = HeadersOpt,
    overwrite: bool = OverwriteOpt,
    limit: Optional[int] = LimitOpt,
    decode_html: bool = typer.Option(False, "--decode-html", help="HTML-unescape the text first"),
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
    progress: bool = ProgressOpt,
):
    """Extract FEV1 (%) values with a pattern match (no service calls)."""
    config = _parser_config(
        input_file, output_file, culture, encoding, target_column, header,
        overwrite, limit, log_level, log_dir, progress,
    )
    _run(SimpleMeasurementsExtractor(decode_html=decode_html, decimal_separator=config.decimal_separator), config)


@app.command("group")
def group(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    grouping_file: Path = typer.Option(..., "--grouping", "-g", exists=True, help="JSON file {group: [names]}"),
    unknown_group: Optional[str] = typer.Option(None, "--unknown", help="Value for names in no group (default: keep name)"),
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    target_column: Optional[str] = TargetOpt,
    header: Optional[list[str]] = HeadersOpt,
    overwrite: bool = OverwriteOpt,
    limit: Optional[int] = LimitOpt,
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
    progress: bool = ProgressOpt,
):
    """Replace medication names with their group names."""
    config = _parser_config(
        input_file, output_file, culture, encoding, target_column, header,
        overwrite, limit, log_level, log_dir, progress,
    )
    _run(MedicationGroupMapper(grouping_file=grouping_file, unknown_group=unknown_group), config)


@app.command("sample")
def sample(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    size: int = typer.Option(DEFAULT_SAMPLE_SIZE, "--size", "-s", min=0, help="Rows to keep"),
    seed: int = typer.Option(DEFAULT_SEED, "--seed", help="Random seed"),
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
    progress: bool = ProgressOpt,
):
    """Randomly sample rows (reproducible for a given seed)."""
    config = _parser_config(
        input_file, output_file, culture, encoding, None, None,
        False, None, log_level, log_dir, progress,
    )
    _run(RandomSampler(sample_size=size, seed=seed), config)


def _prompt_validation(text: str, matches: list[MedicationMatch], cancellation: CancellationToken) -> list[MedicationMatch]:
    """Ask for a verdict on every match of one report."""
    typer.echo("\n" + "=" * 78)
    typer.echo(text)
    typer.echo("-" * 78)
    kept: list[MedicationMatch] = []
    for match in matches:
        cancellation.raise_if_cancelled()
        answer = typer.prompt(
            f"{match.extracted_medication!r} at {match.start_index} ({match.match_in_text!r}) "
            f"[TP/TP_/FP/skip]",
            default=match.experiment_result.value,
        ).strip()
        if answer.lower() == "skip":
            continue
        try:
            match.experiment_result = ExperimentResult(answer.upper())
        except ValueError:
            typer.echo(f"Unknown answer {answer!r}; keeping {match.experiment_result.value}")
        kept.append(match)
    return kept


@app.command("validate")
def validate(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    report_header: str = typer.Option("Numero", "--report-header", help="Report number column"),
    medication_header: str = typer.Option("Medication", "--medication-header", help="Medication column"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Review every match at the prompt"),
    culture: str = CultureOpt,
    encoding: str = EncodingOpt,
    target_column: Optional[str] = TargetOpt,
    limit: Optional[int] = LimitOpt,
    log_level: str = LogLevelOpt,
    log_dir: Optional[str] = LogDirOpt,
):
    """Locate extracted medications in their report text and validate them."""
    config = _parser_config(
        input_file, output_file, culture, encoding, target_column, None,
        False, limit, log_level, log_dir, False,
    )
    enricher = ManualValidator(
        validation_function=_prompt_validation if interactive else accept_all,
        report_number_header=report_header,
        medication_header=medication_header,
    )
    _run(enricher, config)


@app.command("convert-encoding")
def convert_encoding(
    input_file: Path = InputArg,
    output_file: Path = OutputArg,
    source_encoding: str = typer.Option("ISO-8859-1", "--from", help="Encoding of the input file"),
):
    """Re-encode a file to UTF-8."""
    lines = convert_file_encoding(input_file, output_file, source_encoding)
    typer.echo(f"Converted {lines} line(s) to UTF-8: {output_file}")


if __name__ == "__main__":
    app()
