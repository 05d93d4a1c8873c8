"""Loguru helpers for consistent logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_SINK_IDS: dict[str, int] = {}


def configure_logging(level: str = "INFO", file: str | None = None) -> Path | None:
    """Replace the default stderr sink and optionally add a rotating file sink."""
    logger.remove()
    _SINK_IDS.clear()
    _SINK_IDS["stderr"] = logger.add(sys.stderr, level=level, backtrace=False, diagnose=False)
    if not file:
        return None
    log_path = Path(file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _SINK_IDS["file"] = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    return log_path
