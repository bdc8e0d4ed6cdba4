"""Logging setup for the service."""

from __future__ import annotations

import logging.config

from app.config import get_settings


def setup_logging(level: str | None = None) -> None:
    """Attach a stream handler to the root logger and set the ``app`` level."""
    level = (level or get_settings().log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"handlers": ["console"], "level": "WARNING"},
            "loggers": {
                "app": {"level": level},
            },
        }
    )
