"""loguru sink configuration."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} [{level}]: {message}"


def configure_logging(level: str = "INFO", log_dir: str | Path | None = "logs") -> None:
    """Console sink plus `error.log` and `combined.log` files under `log_dir`."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_FORMAT, colorize=True)
    if log_dir is None:
        return

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    logger.add(directory / "error.log", level="ERROR", format=_FORMAT, rotation="10 MB")
    logger.add(directory / "combined.log", level=level.upper(), format=_FORMAT, rotation="10 MB")
