"""Load alternative system prompts for prompt experiments."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from ..core.config import culture_format
from ..core.exceptions import InputFormatError


@dataclass(frozen=True)
class SystemPromptEntry:
    """One candidate system prompt.

    Attributes:
        system_prompt: The prompt text.
        format: Requested output format (``"json"`` or empty for free text).
    """

    system_prompt: str
    format: str = ""

    @property
    def is_json_format(self) -> bool:
        return self.format.strip().lower() == "json"


def load_system_prompts(path: str | Path, culture_name: str = "es-ES") -> list[SystemPromptEntry]:
    """Read a headerless ``(system_prompt, format)`` CSV file.

    The format column may be missing altogether, in which case every
    prompt is treated as free text.
    """
    delimiter, _ = culture_format(culture_name)
    frame = pd.read_csv(
        path,
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
    )
    if frame.shape[1] > 2:
        raise InputFormatError(
            f"Expected at most 2 columns (system_prompt, format), got {frame.shape[1]}"
        )
    entries = []
    for values in frame.itertuples(index=False):
        prompt = values[0]
        fmt = values[1] if len(values) > 1 else ""
        entries.append(SystemPromptEntry(system_prompt=prompt, format=fmt))
    return entries
