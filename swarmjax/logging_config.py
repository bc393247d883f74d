"""Logging configuration for swarmjax."""

from __future__ import annotations

import logging
import os
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    *,
    level: Optional[str] = None,
    format: str = DEFAULT_FORMAT,
    datefmt: str = DEFAULT_DATEFMT,
) -> logging.Logger:
    """Attach a stream handler to the ``swarmjax`` logger.

    Args:
        level: Optional explicit log level. Falls back to the
            ``SWARMJAX_LOG_LEVEL`` env var or WARNING when not provided.
        format: Log format string.
        datefmt: Date format string.

    Returns:
        The package logger (``swarmjax``).
    """

    raw_level = level if level is not None else os.getenv("SWARMJAX_LOG_LEVEL")
    resolved_level = (raw_level or "WARNING").upper()

    package_logger = logging.getLogger("swarmjax")
    package_logger.setLevel(resolved_level)
    if not any(
        getattr(handler, "_swarmjax_handler", False)
        for handler in package_logger.handlers
    ):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=format, datefmt=datefmt))
        handler._swarmjax_handler = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)

    package_logger.debug("Logging configured at %s", resolved_level)
    return package_logger


__all__ = ["configure_logging"]
