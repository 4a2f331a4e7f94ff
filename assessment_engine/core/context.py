from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

# Any code in the async call chain of an attempt operation can read this
# without the id being passed through every function call.
attempt_id_var: ContextVar[str] = ContextVar("attempt_id", default="-")


class AttemptContextFilter(logging.Filter):
    """Injects the current attempt id into every LogRecord.

    Installed on the handler (not a logger) so records propagated up from
    child loggers pass through it too.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "attempt_id", None) is None:
            record.attempt_id = attempt_id_var.get("-")  # type: ignore[attr-defined]
        return True


@contextmanager
def attempt_context(attempt_id: UUID | str) -> Iterator[None]:
    token = attempt_id_var.set(str(attempt_id))
    try:
        yield
    finally:
        attempt_id_var.reset(token)
