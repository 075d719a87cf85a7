"""Centralized logging configuration for the ``expense_ingest`` package.

This module provides two public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"expense_ingest"``). Called once by entrypoints (the CLI or a
  host web application) at process startup.
- ``get_logger(name)``: acquire a logger by name, ensuring that the package
  root logger has at least a ``NullHandler`` attached when not configured.

Library modules never attach their own handlers. They only call
``get_logger("expense_ingest.<module>")`` and rely on the host's configuration.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "expense_ingest"
_LEVEL_ENV = "EXPENSE_INGEST_LOG_LEVEL"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Accept numeric strings or standard level names (INFO/DEBUG/etc.).
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
        return logging.INFO
    env_val = os.getenv(_LEVEL_ENV)
    if env_val:
        return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level-name string (e.g., ``"INFO"``). If
        ``None``, defaults to ``EXPENSE_INGEST_LOG_LEVEL`` when set, otherwise
        ``logging.INFO``.
    fmt:
        Optional logging format string. Defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        The output stream for the single ``StreamHandler``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(
        logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
    )

    logger.setLevel(resolved)
    logger.addHandler(handler)
    # Avoid double emission via the root logger.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, attaching a ``NullHandler`` until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
