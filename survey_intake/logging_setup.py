"""Central logging configuration for the survey intake core.

Installs one stdout handler on the root logger; every module logs through
``logging.getLogger(__name__)`` with event-style messages
(``"submission_finalize_ok record_id=%s"``). Retry, replay and compensation
decisions from the pipeline stay at INFO; SQLAlchemy engine chatter is held
at WARNING. ``LOG_LEVEL`` overrides the root level.
"""
from __future__ import annotations

import logging
import os
from logging.config import dictConfig
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


def _dict_config(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": DEFAULT_FORMAT}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            "survey_intake.logic.resilience": {"level": "INFO"},
            "survey_intake.logic.submission_pipeline": {"level": "INFO"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process-wide logging once.

    Returns early when the root logger already has handlers (reloaders,
    test runners, an embedding application that owns logging).
    """
    root = logging.getLogger()
    if root.handlers:
        return
    resolved = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    dictConfig(_dict_config(resolved))


__all__ = ["configure_logging", "DEFAULT_FORMAT"]
