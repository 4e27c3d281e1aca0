import io
import json
import logging

import pytest
from pythonjsonlogger.json import JsonFormatter

from eventhub.common.logging import ROOT_LOGGER, get_logger, setup_logging
from eventhub.config import settings


@pytest.fixture
def root_logger():
    logger = logging.getLogger(ROOT_LOGGER)
    saved = (logger.handlers[:], logger.level, logger.propagate)
    yield logger
    logger.handlers, logger.level, logger.propagate = saved[0], saved[1], saved[2]


def test_json_format_installs_json_formatter(monkeypatch, root_logger):
    monkeypatch.setattr(settings, "LOG_FORMAT", "json")
    setup_logging()

    [handler] = root_logger.handlers
    assert isinstance(handler.formatter, JsonFormatter)

    stream = io.StringIO()
    handler.setStream(stream)
    get_logger("negotiation.engine").info("Request %s booked", "abc")

    record = json.loads(stream.getvalue())
    assert record["message"] == "Request abc booked"
    assert record["level"] == "INFO"
    assert record["logger"] == "eventhub.negotiation.engine"


def test_text_format_is_default(monkeypatch, root_logger):
    monkeypatch.setattr(settings, "LOG_FORMAT", "text")
    setup_logging()
    setup_logging()

    [handler] = root_logger.handlers
    assert not isinstance(handler.formatter, JsonFormatter)
    assert root_logger.propagate is False
