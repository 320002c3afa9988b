from __future__ import annotations

import json
import logging

import pytest

from spendlens.core.logging import (
    JsonFormatter,
    bind_context,
    current_context,
    get_logger,
    log_event,
    log_stage,
    reset_context,
)


class _Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.setFormatter(JsonFormatter())
        self.lines: list[dict] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.lines.append(json.loads(self.format(record)))


@pytest.fixture
def captured():
    logger = get_logger("spendlens.tests.logging")
    handler = _Capture()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield logger, handler
    logger.removeHandler(handler)


def test_bound_context_is_merged_into_events_until_reset(captured):
    logger, handler = captured
    token = bind_context(batch_id="b-1", request_id=None)
    try:
        assert current_context() == {"batch_id": "b-1"}
        log_event(logger, "thing.happened", count=2, skipped=None)
    finally:
        reset_context(token)
    log_event(logger, "thing.after")

    first, second = handler.lines
    assert first["event"] == "thing.happened"
    assert first["batch_id"] == "b-1"
    assert first["count"] == 2
    assert "skipped" not in first
    assert "batch_id" not in second


def test_log_stage_logs_finish_with_outcome_fields(captured):
    logger, handler = captured
    with log_stage(logger, "work", job="x") as outcome:
        outcome["ran"] = True

    (line,) = handler.lines
    assert line["event"] == "work.finish"
    assert line["job"] == "x"
    assert line["ran"] is True
    assert isinstance(line["duration_ms"], int)


def test_log_stage_logs_failure_and_reraises(captured):
    logger, handler = captured
    with pytest.raises(RuntimeError):
        with log_stage(logger, "work"):
            raise RuntimeError("boom")

    (line,) = handler.lines
    assert line["event"] == "work.failed"
    assert line["level"] == "ERROR"
    assert line["error_type"] == "RuntimeError"
    assert "boom" in line["exc_info"]
