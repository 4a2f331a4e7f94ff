"""Tests for structured (JSON) logging output and attempt context.

Every line logged while an attempt operation runs should carry the
attempt id, so one attempt's lifecycle can be pulled out of the stream.
"""

from __future__ import annotations

import json
import logging
import sys

from assessment_engine.core.context import (
    AttemptContextFilter,
    attempt_context,
    attempt_id_var,
)
from assessment_engine.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "test message", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_produces_valid_json() -> None:
    formatter = _JsonFormatter()
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg="Hello %s",
        args=("world",),
        exc_info=None,
    )
    parsed = json.loads(formatter.format(record))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test.logger"
    assert parsed["message"] == "Hello world"
    assert "timestamp" in parsed


def test_json_formatter_includes_attempt_fields() -> None:
    formatter = _JsonFormatter()
    record = _record()
    record.attempt_id = "att-1"  # type: ignore[attr-defined]
    record.assessment_id = "asm-1"  # type: ignore[attr-defined]
    record.taker_id = "tk-1"  # type: ignore[attr-defined]
    record.trigger = "deadline"  # type: ignore[attr-defined]

    parsed = json.loads(formatter.format(record))
    assert parsed["attempt_id"] == "att-1"
    assert parsed["assessment_id"] == "asm-1"
    assert parsed["taker_id"] == "tk-1"
    assert parsed["trigger"] == "deadline"


def test_json_formatter_omits_placeholder_attempt_id() -> None:
    formatter = _JsonFormatter()
    record = _record()
    record.attempt_id = "-"  # type: ignore[attr-defined]
    parsed = json.loads(formatter.format(record))
    assert "attempt_id" not in parsed
    assert "trigger" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    formatter = _JsonFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname="test.py",
            lineno=1,
            msg="Something failed",
            args=(),
            exc_info=sys.exc_info(),
        )
        output = formatter.format(record)

    parsed = json.loads(output)
    assert "ValueError: test error" in parsed["exception"]


def test_container_formatter_still_works() -> None:
    output = _ContainerFormatter().format(_record("plain text"))
    assert "plain text" in output
    assert "INFO" in output


def test_filter_attaches_current_attempt_id() -> None:
    flt = AttemptContextFilter()
    with attempt_context("att-42"):
        record = _record()
        assert flt.filter(record) is True
    assert record.attempt_id == "att-42"  # type: ignore[attr-defined]


def test_filter_uses_placeholder_outside_attempt() -> None:
    record = _record()
    AttemptContextFilter().filter(record)
    assert record.attempt_id == "-"  # type: ignore[attr-defined]


def test_filter_keeps_explicit_attempt_id() -> None:
    record = _record()
    record.attempt_id = "explicit"  # type: ignore[attr-defined]
    with attempt_context("ambient"):
        AttemptContextFilter().filter(record)
    assert record.attempt_id == "explicit"  # type: ignore[attr-defined]


def test_attempt_context_restores_previous_value() -> None:
    with attempt_context("outer"):
        with attempt_context("inner"):
            assert attempt_id_var.get() == "inner"
        assert attempt_id_var.get() == "outer"
    assert attempt_id_var.get() == "-"
