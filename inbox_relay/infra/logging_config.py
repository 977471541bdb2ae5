"""Process-wide logging setup."""

from __future__ import annotations

import logging
import logging.config
from typing import Optional

from inbox_relay.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


class LoggingConfig:
    """Configure root logging once from settings. Safe to instantiate repeatedly."""

    def __init__(self, level: Optional[str] = None) -> None:
        global _configured
        if _configured:
            return
        level_name = (level or get_settings().log_level or "INFO").upper()
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"default": {"format": LOG_FORMAT}},
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                    }
                },
                "root": {"level": level_name, "handlers": ["console"]},
                "loggers": {
                    "httpx": {"level": "WARNING"},
                    "sqlalchemy.engine": {"level": "WARNING"},
                },
            }
        )
        _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the application."""
    return logging.getLogger(f"inbox_relay.{name}")
