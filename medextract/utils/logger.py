"""Logging helpers for medextract.

All modules obtain their logger through :func:`get_logger` so that the
package's log output can be configured in one place with
:func:`setup_logging`.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PACKAGE_LOGGER = "medextract"

_FORMATS = {
    "console": "%(levelname)-8s %(name)s: %(message)s",
    "plain": "%(message)s",
    "detailed": "%(levelname)-8s %(name)s [%(filename)s:%(lineno)d]: %(message)s",
}


def get_logger(name: str) -> logging.Logger:
    """Return a logger nested under the package logger."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def setup_logging(
    level: str | int = "INFO",
    format_type: str = "console",
    include_timestamp: bool = False,
    log_dir: str | Path | None = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Level name or number for the package logger.
        format_type: One of ``"console"``, ``"plain"`` or ``"detailed"``.
        include_timestamp: Prefix every record with its timestamp.
        log_dir: When given, also write a ``medextract.log`` file there.

    Returns:
        The configured package logger.
    """
    if format_type not in _FORMATS:
        raise ValueError(
            f"format_type must be one of {sorted(_FORMATS)}, got {format_type!r}"
        )

    fmt = _FORMATS[format_type]
    if include_timestamp:
        fmt = "%(asctime)s " + fmt
    formatter = logging.Formatter(fmt)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    # Re-running setup replaces the handlers installed by a previous call
    for handler in list(logger.handlers):
        if getattr(handler, "_medextract_handler", False):
            logger.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console._medextract_handler = True  # type: ignore[attr-defined]
    logger.addHandler(console)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path / "medextract.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s " + _FORMATS["detailed"]))
        file_handler._medextract_handler = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    return logger
