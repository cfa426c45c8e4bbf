"""
Configuration for medextract parse runs.

``ParserConfig`` covers everything the streaming engine needs (files,
CSV dialect, target column, output headers, progress, logging);
``ApiConfig`` covers the extraction service and its retry schedules.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from .progress import ProgressValue

# culture name -> (field delimiter, decimal separator)
CULTURE_FORMATS: dict[str, tuple[str, str]] = {
    "es-ES": (";", ","),
    "fr-FR": (";", ","),
    "de-DE": (";", ","),
    "it-IT": (";", ","),
    "pt-PT": (";", ","),
    "en-US": (",", "."),
    "en-GB": (",", "."),
    "invariant": (",", "."),
}

DEFAULT_TRANSPORT_DELAYS: tuple[float, ...] = (
    1, 2, 5, 10, 20, 30, 60, 120, 300, 600, 1800, 3600,
)

DEFAULT_MODEL = "llama3.1:latest"


def culture_format(culture_name: str) -> tuple[str, str]:
    """Return ``(delimiter, decimal_separator)`` for *culture_name*.

    Lookup is case-insensitive; unknown cultures fall back to their
    language (``es-MX`` -> ``es-ES``).
    """
    by_lower = {name.lower(): fmt for name, fmt in CULTURE_FORMATS.items()}
    key = culture_name.lower()
    if key in by_lower:
        return by_lower[key]
    language = key.split("-")[0]
    for name, fmt in by_lower.items():
        if name.split("-")[0] == language:
            return fmt
    raise ValueError(
        f"Unsupported culture_name {culture_name!r}; known: {', '.join(CULTURE_FORMATS)}"
    )


@dataclass(frozen=True)
class ParserConfig:
    """
    Configuration for a single parse run.

    Parsers provide their own defaults for the target column and the
    output headers; the values here override them when set.
    """

    # === Files ===
    input_file: str | Path
    """Delimited text file to read"""

    output_file: str | Path
    """Delimited text file to write (created or truncated)"""

    encoding: str = "utf-8"
    """Encoding of the input file (output is always UTF-8)"""

    # === CSV dialect ===
    culture_name: str = "es-ES"
    """Locale that decides the delimiter and the decimal separator"""

    delimiter: Optional[str] = None
    """Field delimiter (None = derived from culture_name)"""

    # === Columns ===
    input_target_column: Optional[str] = None
    """Header of the column holding the text to process (None = parser default)"""

    output_additional_headers: Optional[list[str]] = None
    """Headers for the columns the parser adds (None = parser default)"""

    overwrite_input_column: bool = False
    """Replace the target column with the new columns instead of appending them"""

    # === Processing ===
    row_limit: Optional[int] = None
    """Stop after this many input rows (None = whole file)"""

    read_chunk_size: int = 1000
    """Rows pulled from the CSV reader at a time"""

    write_batch_size: int = 1
    """Output rows buffered before they are written to disk"""

    # === Progress ===
    enable_progress_bar: bool = False
    """Show a tqdm progress bar"""

    progress_callback: Optional[Callable[["ProgressValue"], Any]] = field(
        default=None, compare=False, repr=False
    )
    """Optional sink for progress updates"""

    # === Logging ===
    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"""

    log_dir: Optional[str] = None
    """Directory for log files (None = no file logging)"""

    def __post_init__(self):
        """Validate configuration values after initialization."""
        if not str(self.input_file):
            raise ValueError("input_file must not be empty")
        if not str(self.output_file):
            raise ValueError("output_file must not be empty")

        # Raises for unknown cultures
        culture_format(self.culture_name)

        if self.delimiter is not None and len(self.delimiter) != 1:
            raise ValueError(f"delimiter must be a single character, got {self.delimiter!r}")

        if self.row_limit is not None and self.row_limit <= 0:
            raise ValueError(f"row_limit must be positive, got {self.row_limit}")

        if self.read_chunk_size <= 0:
            raise ValueError(f"read_chunk_size must be positive, got {self.read_chunk_size}")

        if self.write_batch_size <= 0:
            raise ValueError(f"write_batch_size must be positive, got {self.write_batch_size}")

        if self.input_target_column is not None and not self.input_target_column.strip():
            raise ValueError("input_target_column must not be blank")

        if self.output_additional_headers is not None:
            object.__setattr__(self, "output_additional_headers", list(self.output_additional_headers))

    # -- derived values ----------------------------------------------------

    @property
    def field_delimiter(self) -> str:
        return self.delimiter or culture_format(self.culture_name)[0]

    @property
    def decimal_separator(self) -> str:
        return culture_format(self.culture_name)[1]

    # -- presets -------------------------------------------------------------

    @classmethod
    def for_development(cls, input_file: str | Path, output_file: str | Path, **overrides: Any) -> "ParserConfig":
        """Small runs with verbose logging."""
        defaults: dict[str, Any] = dict(
            row_limit=10,
            write_batch_size=1,
            enable_progress_bar=True,
            log_level="DEBUG",
        )
        defaults.update(overrides)
        return cls(input_file=input_file, output_file=output_file, **defaults)

    @classmethod
    def for_production(cls, input_file: str | Path, output_file: str | Path, **overrides: Any) -> "ParserConfig":
        """Whole-file runs with a progress bar."""
        defaults: dict[str, Any] = dict(
            write_batch_size=1,
            enable_progress_bar=True,
            log_level="INFO",
        )
        defaults.update(overrides)
        return cls(input_file=input_file, output_file=output_file, **defaults)


@dataclass(frozen=True)
class ApiConfig:
    """Configuration for the extraction service and its retry policies."""

    # === Service ===
    provider: str = "ollama"
    """``"ollama"`` (native /api/generate) or ``"openai"`` (OpenAI-compatible)"""

    base_url: Optional[str] = None
    """Service base URL (Ollama: the server root, e.g. http://localhost:11434)"""

    api_key: Optional[str] = field(default=None, repr=False)
    """Key sent with every request"""

    model: str = DEFAULT_MODEL
    """Model name passed to the service"""

    temperature: float = 0.0
    """Sampling temperature (0.0 = deterministic)"""

    timeout: float = 300.0
    """Per-request timeout in seconds"""

    use_json_format: bool = True
    """Ask the service for JSON-constrained output"""

    # === Retries ===
    retry_on_invalid_response: bool = True
    """Retry when the response is not valid JSON for the expected schema"""

    invalid_response_attempts: int = 10
    """Total attempts for malformed responses (first call included)"""

    invalid_response_delay: float = 2.0
    """Fixed wait between malformed-response attempts, in seconds"""

    transport_delays: tuple[float, ...] = DEFAULT_TRANSPORT_DELAYS
    """Backoff schedule for transport failures; one retry per entry"""

    def __post_init__(self):
        """Validate configuration values after initialization."""
        if self.provider not in ("ollama", "openai"):
            raise ValueError(f"provider must be 'ollama' or 'openai', got {self.provider!r}")

        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be between 0.0 and 2.0, got {self.temperature}")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

        if self.invalid_response_attempts <= 0:
            raise ValueError(
                f"invalid_response_attempts must be positive, got {self.invalid_response_attempts}"
            )

        if self.invalid_response_delay < 0:
            raise ValueError(
                f"invalid_response_delay must be non-negative, got {self.invalid_response_delay}"
            )

        delays = tuple(float(d) for d in self.transport_delays)
        if any(d < 0 for d in delays):
            raise ValueError("transport_delays must be non-negative")
        object.__setattr__(self, "transport_delays", delays)

    @property
    def invalid_response_delays(self) -> tuple[float, ...]:
        """Waits between malformed-response attempts."""
        if not self.retry_on_invalid_response:
            return ()
        return (self.invalid_response_delay,) * (self.invalid_response_attempts - 1)

    @classmethod
    def from_env(cls, **overrides: Any) -> "ApiConfig":
        """Build from ``MEDEXTRACT_*`` environment variables.

        Recognised: ``MEDEXTRACT_PROVIDER``, ``MEDEXTRACT_API_URL``,
        ``MEDEXTRACT_API_KEY``, ``MEDEXTRACT_MODEL``. Explicit keyword
        overrides win; ``None`` overrides are ignored.
        """
        values: dict[str, Any] = {}
        env_map = {
            "provider": "MEDEXTRACT_PROVIDER",
            "base_url": "MEDEXTRACT_API_URL",
            "api_key": "MEDEXTRACT_API_KEY",
            "model": "MEDEXTRACT_MODEL",
        }
        for attr, var in env_map.items():
            value = os.environ.get(var)
            if value:
                values[attr] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @classmethod
    def for_development(cls, **overrides: Any) -> "ApiConfig":
        """Short retry schedules so failures surface quickly."""
        defaults: dict[str, Any] = dict(
            invalid_response_attempts=3,
            invalid_response_delay=0.5,
            transport_delays=(1, 2, 5),
            timeout=60.0,
        )
        defaults.update(overrides)
        return cls(**defaults)
