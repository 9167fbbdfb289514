"""Shared logging configuration."""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "SAFEBUMP_LOG_LEVEL"


def _resolve_level(value: int | str | None) -> int:
    for candidate in (value, os.environ.get(LOG_LEVEL_ENV)):
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str):
            level = logging.getLevelName(candidate.strip().upper())
            if isinstance(level, int):
                return level
    return logging.INFO


def configure_logging(level: int | str | None = None, console: Console | None = None) -> None:
    """Send log records through rich, once per process."""
    resolved = _resolve_level(level)
    root = logging.getLogger()
    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(resolved)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(resolved, logging.WARNING))
