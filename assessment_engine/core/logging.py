"""Logging configuration for the assessment engine.

Two output shapes are supported:

  _ContainerFormatter: human-readable, single line, for local runs and the
    deadline worker's terminal.

  _JsonFormatter: one JSON object per line for log aggregation.  Attempt
    context (attempt_id, assessment_id, taker_id, trigger) becomes top-level
    keys so a single attempt's lifecycle can be filtered out of the stream:

      attempt_id == "3f2c..." AND level == "WARNING"

    Set LOG_JSON=true to switch to JSON output.

The attempt_id field is attached by the filter in core/context.py, so every
line logged while an attempt operation runs carries it, whichever module
emitted the line.
"""

from __future__ import annotations

import json
import logging
import sys

from assessment_engine.core.context import AttemptContextFilter


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    - Always: ISO-8601 timestamp, level, logger name, message
    - WARNING+: appends [filename:lineno] so you can locate the guard clause
    - ERROR/CRITICAL: stack trace included when exc_info is present
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context fields are read off the LogRecord: attempt_id comes from the
    context filter, the others from ``extra=`` at the call site.
    """

    _CONTEXT_FIELDS = (
        "attempt_id",
        "assessment_id",
        "taker_id",
        "trigger",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None and value != "-":
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: If True, emit JSON lines. If False, human-readable.
                     Controlled by LOG_JSON in Settings.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())
    handler.addFilter(AttemptContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # SQL echo and driver chatter stay out of DEBUG output
    for name in ("sqlalchemy.engine", "asyncio", "asyncpg", "redis"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
