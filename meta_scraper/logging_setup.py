"""Logging configuration helpers for the scraping service."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

DEFAULT_LOG_DIR = Path(os.getenv("APP_LOG_DIR", "logs"))
DEFAULT_LOG_FILE = os.getenv("APP_LOG_FILENAME", "meta-scraper.log")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _normalise_level(level: Optional[str | int]) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        value = level.strip().upper()
        if value.isdigit():
            return int(value)
        resolved = logging.getLevelName(value)
        if isinstance(resolved, int):
            return resolved
    return logging.INFO


def configure_logging(
    level: Optional[str | int] = None,
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = DEFAULT_LOG_FILE,
) -> Optional[Path]:
    """Configure root logging to stream to console and, optionally, a file.

    The log file is truncated on every call so each service run starts with a
    clean slate. Pass ``log_file=None`` for console-only output. Returns the
    file path, if any.
    """

    log_level = _normalise_level(level)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_path: Optional[Path] = None
    if log_file:
        directory = log_dir or DEFAULT_LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / log_file
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))

    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers)
    # The driver's asyncio debug chatter drowns out per-URL logs.
    logging.getLogger("asyncio").setLevel(max(log_level, logging.WARNING))
    logging.getLogger(__name__).info(
        "Logging initialised at %s%s",
        logging.getLevelName(log_level),
        f", file output: {log_path}" if log_path else "",
    )
    return log_path
