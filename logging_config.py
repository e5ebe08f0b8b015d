"""
logging_config.py - Centralized logging configuration.

Every settlement module logs through `get_logger(__name__)` using the
pipe-separated `event | key=value` message style. The CLI and the API call
`setup_logging` once at start-up.
"""

from __future__ import annotations

import logging
import sys


def _coerce_level(level: int | str) -> int:
    """Accept either a logging constant or a level name like 'debug'."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: int | str = logging.INFO, json_format: bool = False) -> None:
    """Configure root logger with consistent formatting.

    Args:
        level: Logging level, as a constant or a name.
        json_format: If True, emit JSON-like log lines.
    """
    root = logging.getLogger()
    root.setLevel(_coerce_level(level))
    root.handlers.clear()

    if json_format:
        formatter = logging.Formatter(
            '{"timestamp":"%(asctime)s","level":"%(levelname)s",'
            '"module":"%(name)s","message":"%(message)s"}',
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(name)-12s] %(levelname)-7s %(message)s",
            datefmt="%H:%M:%S",
        )

    # stderr keeps stdout free for --json output.
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(name)
