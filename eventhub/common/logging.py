"""Logging setup shared by the API process and the Celery workers."""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from eventhub.config import settings

ROOT_LOGGER = "eventhub"

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(
            JsonFormatter(
                _JSON_FORMAT,
                rename_fields={"levelname": "level", "name": "logger"},
            )
        )
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    # Reloads (uvicorn --reload, celery worker restarts) must not stack handlers
    logger.handlers = [handler]
    logger.propagate = False

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
