"""Logging for the ``upiflow`` package.

Library modules log through ``get_logger("upiflow.<module>")`` and never add
handlers of their own. Entrypoints (the CLI or a host application) call
:func:`configure_logging` once at startup; until then the package logger only
carries a ``NullHandler`` so importing ``upiflow`` stays silent.

The level comes from the ``level`` argument, else ``UPIFLOW_LOG_LEVEL`` (a
name such as ``DEBUG`` or a number), else ``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "upiflow"
LEVEL_ENV_VAR = "UPIFLOW_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# The handler installed by configure_logging; None until then.
_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Turn ``level`` (or the environment) into a numeric logging level.

    Unknown names resolve to ``INFO`` instead of failing startup.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> logging.Logger:
    """Attach the package's single ``StreamHandler``; later calls are no-ops.

    Returns the package logger.
    """

    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        return logger

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    for placeholder in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(placeholder)
    logger.addHandler(handler)
    logger.setLevel(resolved)
    # Records stop here; root handlers installed by a host would repeat them.
    logger.propagate = False

    _handler = handler
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger(name)``, keeping the package quiet until configured."""

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None and not package_logger.handlers:
        package_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
