"""Minimal logging helpers for the project."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

DEFAULT_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def get_logger(
    name: str = "pulsesync",
    level: int = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Return ``name``'s logger with exactly one pulsesync stream handler.

    Each call replaces that handler with a fresh one bound to ``stream`` (the
    current ``sys.stderr`` by default), so a stream closed since the last
    call is never touched again.
    """

    logger = logging.getLogger(name)
    for old in [h for h in logger.handlers if getattr(h, "_pulsesync", False)]:
        logger.removeHandler(old)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler._pulsesync = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter(fmt))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
