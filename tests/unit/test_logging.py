"""
Unit tests for structured logging utilities.
"""

import json
import logging
from io import StringIO

import pytest

from dora_tracker.utils.logging import (
    JSONFormatter,
    get_logger,
    log_api_call,
    log_error_with_context,
    log_job_transition,
    log_webhook_event,
)


@pytest.fixture
def captured():
    """Attach a JSON handler to a fresh logger and return (adapter, stream)."""
    logger = get_logger("test_capture")
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.logger.addHandler(handler)
    logger.logger.setLevel(logging.DEBUG)
    yield logger, stream
    logger.logger.removeHandler(handler)


def records(stream: StringIO) -> list:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def test_json_formatter():
    """Test JSON formatter produces valid JSON output."""
    formatter = JSONFormatter()

    logger = logging.getLogger("test")
    logger.setLevel(logging.INFO)

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    logger.info("Test message", extra={"repository": "acme/widget", "job_id": "job-1", "attempt": 2})

    log_data = json.loads(stream.getvalue())
    logger.removeHandler(handler)

    assert "timestamp" in log_data
    assert log_data["level"] == "INFO"
    assert log_data["logger"] == "test"
    assert log_data["message"] == "Test message"
    assert log_data["repository"] == "acme/widget"
    assert log_data["job_id"] == "job-1"
    assert log_data["context"] == {"attempt": 2}
    assert "source" in log_data


def test_get_logger_with_context():
    """Test getting logger with context."""
    logger = get_logger("test_module", repository="acme/widget")
    scoped = logger.with_context(environment="prod")

    assert logger.extra == {"repository": "acme/widget"}
    assert scoped.extra == {"repository": "acme/widget", "environment": "prod"}


def test_context_merged_into_records(captured):
    logger, stream = captured

    logger.with_context(repository="acme/widget", environment="uat").info("Correlating")

    log_data = records(stream)[0]
    assert log_data["repository"] == "acme/widget"
    assert log_data["environment"] == "uat"


def test_log_webhook_event(captured):
    logger, stream = captured

    log_webhook_event(logger, event="pull_request", action="closed", repository="acme/widget")

    log_data = records(stream)[0]
    assert log_data["message"] == "Webhook received: pull_request.closed"
    assert log_data["event"] == "pull_request"
    assert log_data["context"]["action"] == "closed"


def test_log_job_transition(captured):
    logger, stream = captured

    log_job_transition(logger, job_id="job-1", kind="dev", state="completed", progress=100)

    log_data = records(stream)[0]
    assert log_data["job_id"] == "job-1"
    assert log_data["context"] == {"kind": "dev", "state": "completed", "progress": 100}


def test_log_api_call(captured):
    logger, stream = captured

    log_api_call(logger, service="github", endpoint="/repos/acme/widget", method="GET",
                 status_code=200, duration_ms=12.345)

    log_data = records(stream)[0]
    assert log_data["level"] == "DEBUG"
    assert log_data["context"]["duration_ms"] == 12.35
    assert log_data["context"]["status_code"] == 200


def test_log_api_call_with_error(captured):
    logger, stream = captured

    log_api_call(logger, service="github", endpoint="/repos/acme/widget", method="GET", error="timeout")

    log_data = records(stream)[0]
    assert log_data["level"] == "ERROR"
    assert log_data["context"]["error"] == "timeout"


def test_log_error_with_context(captured):
    logger, stream = captured

    try:
        raise ValueError("bad sha")
    except ValueError as e:
        log_error_with_context(logger, "Failed to store commit", e, sha="abc")

    log_data = records(stream)[0]
    assert log_data["sha"] == "abc"
    assert log_data["error"]["type"] == "ValueError"
    assert "bad sha" in log_data["error"]["stack_trace"]
