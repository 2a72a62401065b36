"""Logging setup for the application."""

import logging
import logging.config

from textbook_indents.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stderr handler for the package loggers.

    SQL echo is controlled separately by ``settings.log_sql`` on the engine.
    """
    level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": {
                "textbook_indents": {"level": level},
            },
            "root": {"handlers": ["stderr"], "level": "WARNING"},
        }
    )
