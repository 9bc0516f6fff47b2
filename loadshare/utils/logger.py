"""Logging setup for the engine's ``loadshare.*`` loggers."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from loadshare.utils.config import get_settings


ENGINE_LOGGER_NAME = "loadshare"

_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the ``loadshare`` logger hierarchy once.

    Host applications that already configured the root logger keep their
    handlers; records still propagate to them. Otherwise a stdout handler is
    attached that tags every line with the engine name and version, e.g.
    ``... | INFO | loadshare 0.1.0 | loadshare.services.burnout_service | Overload detected | ...``.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    settings = get_settings()
    resolved_level = (level or settings.log_level).upper()

    engine_logger = logging.getLogger(ENGINE_LOGGER_NAME)
    engine_logger.setLevel(resolved_level)

    if not logging.getLogger().handlers and not engine_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                f"%(asctime)s | %(levelname)s | {settings.app_name} {settings.app_version} | %(name)s | %(message)s"
            )
        )
        engine_logger.addHandler(handler)
        engine_logger.propagate = False

    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``loadshare`` hierarchy for the requested module."""
    configure_logging()
    if name != ENGINE_LOGGER_NAME and not name.startswith(f"{ENGINE_LOGGER_NAME}."):
        name = f"{ENGINE_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
