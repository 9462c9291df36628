"""Logging setup shared by the API entrypoint and scripts."""

from __future__ import annotations

import logging.config


def configure_logging(log_level: str = "INFO") -> None:
    """Configure console logging for the ``capacity`` package."""

    level = log_level.upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "detailed": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": "detailed",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "capacity": {
                    "level": level,
                    "handlers": ["console"],
                    "propagate": False,
                },
            },
        }
    )
