"""Replace medication names with their group names."""

from __future__ import annotations

import json
from pathlib import Path
from typing import AsyncIterator, Optional

from ..core.cancellation import CancellationToken
from ..core.exceptions import InputFormatError
from ..utils.logger import get_logger
from .base import RowContext, build_output_row

logger = get_logger(__name__)

MEDICATION_SEPARATOR = "+"
REPLACEMENT_HEADER = "NewName"


def load_groups(path: str | Path) -> dict[str, list[str]]:
    """Read a ``{"group": ["name", ...]}`` JSON file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        logger.error("Grouping file %s is not valid JSON: %s", path, exc)
        raise InputFormatError(f"Grouping file is not valid JSON: {path}") from exc

    if not isinstance(data, dict) or not all(
        isinstance(names, list) and all(isinstance(n, str) for n in names)
        for names in data.values()
    ):
        raise InputFormatError(
            f"Grouping file must map group names to lists of medication names: {path}"
        )
    return data


def invert_groups(groups: dict[str, list[str]]) -> dict[str, str]:
    """Map each medication name to its group (the last group listing it wins)."""
    return {name: group for group, names in groups.items() for name in names}


class MedicationGroupMapper:
    """Maps ``+``-joined medication names in the target column to groups.

    Names missing from the grouping keep their original text unless
    ``unknown_group`` is set, in which case they become that value.
    Exactly one output row per input row.
    """

    name = "group"
    additional_output_column_count = 1
    default_output_headers = [REPLACEMENT_HEADER]
    default_target_header: Optional[str] = REPLACEMENT_HEADER
    requires_target_column = True

    def __init__(
        self,
        grouping_file: str | Path | None = None,
        groups: dict[str, list[str]] | None = None,
        unknown_group: str | None = None,
    ):
        if grouping_file is None and groups is None:
            raise ValueError("Either grouping_file or groups is required")
        self.grouping_file = grouping_file
        self.unknown_group = unknown_group
        self._groups = groups
        self._name_to_group: dict[str, str] | None = None

    async def prepare(self, cancellation: CancellationToken) -> None:
        if self._groups is None:
            self._groups = load_groups(self.grouping_file)
        self._name_to_group = invert_groups(self._groups)
        logger.info(
            "Loaded %d group(s) covering %d medication name(s)",
            len(self._groups), len(self._name_to_group),
        )

    def map_value(self, value: str) -> str:
        if self._name_to_group is None:
            raise RuntimeError("MedicationGroupMapper.prepare() has not been called")
        mapped = []
        for name in value.split(MEDICATION_SEPARATOR):
            group = self._name_to_group.get(name)
            if group is None:
                group = self.unknown_group if self.unknown_group is not None else name
            mapped.append(group)
        return MEDICATION_SEPARATOR.join(mapped)

    async def transform(
        self, ctx: RowContext, cancellation: CancellationToken
    ) -> AsyncIterator[list[str]]:
        groups = self.map_value(ctx.target_text)
        yield build_output_row(ctx.row, ctx.target_index, [groups], ctx.overwrite)
