"""Logging configuration for the lexical diversity package."""

from __future__ import annotations

import logging
from typing import Optional, Union

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_PACKAGE_LOGGER = "lexical_diversity"


def parse_level(level: Union[int, str]) -> int:
    """Translate ``"debug"``/``"INFO"``/``10`` style values into a logging level."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Configure root logging with a consistent format.

    The package logger is pinned to the same level so that library messages
    are emitted even when the root logger was configured elsewhere first.
    """
    numeric = parse_level(level)
    logging.basicConfig(level=numeric, format=_DEFAULT_FORMAT, handlers=[handler] if handler else None)
    logging.getLogger(_PACKAGE_LOGGER).setLevel(numeric)


def get_logger(name: str) -> logging.Logger:
    """Return a logger configured for the given ``name``."""
    return logging.getLogger(name)
