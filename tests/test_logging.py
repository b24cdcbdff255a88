"""Tests for structured logging."""

import json
import logging

import pytest

from wakecheck.logging_config import (
    JsonFormatter,
    TextFormatter,
    correlation_id_ctx,
    get_logger,
)


def make_record(level=logging.INFO, **fields):
    record = logging.LogRecord(
        name="wakecheck.test",
        level=level,
        pathname=__file__,
        lineno=1,
        msg="Escalation dismissed",
        args=(),
        exc_info=None,
    )
    if fields:
        record.extra_fields = fields
    return record


@pytest.fixture
def correlation_id():
    token = correlation_id_ctx.set("req-42")
    yield "req-42"
    correlation_id_ctx.reset(token)


class TestJsonFormatter:
    def test_includes_fields_and_correlation_id(self, correlation_id):
        output = json.loads(
            JsonFormatter(service_name="svc").format(make_record(event_id="e-1"))
        )

        assert output["message"] == "Escalation dismissed"
        assert output["service"] == "svc"
        assert output["level"] == "INFO"
        assert output["correlation_id"] == correlation_id
        assert output["event_id"] == "e-1"
        assert "location" not in output

    def test_errors_carry_location(self):
        output = json.loads(JsonFormatter().format(make_record(logging.ERROR)))

        assert "correlation_id" not in output
        assert output["location"]["line"] == 1


class TestTextFormatter:
    def test_key_value_pairs(self, correlation_id):
        line = TextFormatter().format(make_record(event_id="e-1", changed=True))

        assert "[req-42]" in line
        assert line.endswith("Escalation dismissed event_id=e-1 changed=True")

    def test_placeholder_without_correlation_id(self):
        assert "[-]" in TextFormatter().format(make_record())


class TestStructuredLogger:
    def test_keyword_fields_become_extra_fields(self, caplog):
        logger = get_logger("wakecheck.test")

        with caplog.at_level(logging.INFO, logger="wakecheck.test"):
            logger.info("Sweep complete", escalated=2)

        record = caplog.records[-1]
        assert record.getMessage() == "Sweep complete"
        assert record.extra_fields == {"escalated": 2}

    def test_exception_attaches_traceback(self, caplog):
        logger = get_logger("wakecheck.test")

        with caplog.at_level(logging.ERROR, logger="wakecheck.test"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.exception("Callback failed", timer="backup-1")

        record = caplog.records[-1]
        assert record.exc_info is not None
        assert record.extra_fields == {"timer": "backup-1"}
