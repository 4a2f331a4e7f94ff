"""Deadline timers for in-progress attempts.

Each attempt has a fixed deadline, `started_at + duration_seconds`. When it
arrives, the scheduler calls back into the attempt service, and the service
submits the attempt with trigger DEADLINE. The service is the one that
decides what happens, so a callback for an attempt that is already
submitted just does nothing.

TWO IMPLEMENTATIONS
-------------------
  InMemoryDeadlineScheduler: one asyncio `call_later` handle per attempt.
      Timers live in the event loop of this process and die with it;
      `AttemptService.rearm_deadlines()` rebuilds them on startup from
      `started_at` alone.
      A callback that raises is re-armed RETRY_DELAY seconds later.

  RedisDeadlineScheduler: one member per attempt in a sorted set, scored by
      the deadline timestamp.  Any process can schedule; the worker process
      polls `ZRANGEBYSCORE key -inf now` and claims each due member with
      ZREM.  ZREM returns 1 to exactly one caller, so two workers polling
      the same set never fire the same deadline twice.

      ZADD key <fire_at> <attempt_id>     schedule / reschedule
      ZREM key <attempt_id>               cancel, or claim when polling
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable
from uuid import UUID

from assessment_engine.core.metrics import DEADLINES_ARMED

logger = logging.getLogger(__name__)

DeadlineCallback = Callable[[UUID], Awaitable[None]]


@runtime_checkable
class DeadlineScheduler(Protocol):
    def bind(self, callback: DeadlineCallback) -> None: ...
    async def schedule(self, attempt_id: UUID, fire_at: float) -> None: ...
    async def cancel(self, attempt_id: UUID) -> None: ...


class _CallbackHolder:
    def __init__(self) -> None:
        self._callback: DeadlineCallback | None = None

    def bind(self, callback: DeadlineCallback) -> None:
        self._callback = callback

    async def _invoke(self, attempt_id: UUID) -> bool:
        """Run the bound callback; log and swallow failures.

        Returns False when the callback raised.
        """
        if self._callback is None:
            logger.warning("Deadline for attempt=%s fired with no callback bound", attempt_id)
            return False
        try:
            await self._callback(attempt_id)
        except Exception:
            logger.exception("Deadline callback failed for attempt=%s", attempt_id)
            return False
        return True


class InMemoryDeadlineScheduler(_CallbackHolder):
    """Per-process timers on the running event loop."""

    # A failed callback is re-armed this many seconds later.
    RETRY_DELAY = 5.0

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        super().__init__()
        self._clock = clock
        self._handles: dict[UUID, asyncio.TimerHandle] = {}
        self._fire_at: dict[UUID, float] = {}
        self._running: set[asyncio.Task[None]] = set()

    async def schedule(self, attempt_id: UUID, fire_at: float) -> None:
        self._drop(attempt_id)
        loop = asyncio.get_running_loop()
        delay = max(0.0, fire_at - self._clock())
        self._handles[attempt_id] = loop.call_later(delay, self._fire, attempt_id)
        self._fire_at[attempt_id] = fire_at
        DEADLINES_ARMED.set(len(self._handles))
        logger.debug("Deadline armed for attempt=%s in %.1fs", attempt_id, delay)

    async def cancel(self, attempt_id: UUID) -> None:
        self._drop(attempt_id)
        DEADLINES_ARMED.set(len(self._handles))

    def pending(self) -> dict[UUID, float]:
        """Armed deadlines: attempt id -> fire_at."""
        return dict(self._fire_at)

    async def fire_due(self, now: float | None = None) -> list[UUID]:
        """Fire every armed deadline at or before `now`, awaiting each callback."""
        now = self._clock() if now is None else now
        due = [aid for aid, at in self._fire_at.items() if at <= now]
        for attempt_id in due:
            self._drop(attempt_id)
        DEADLINES_ARMED.set(len(self._handles))
        for attempt_id in due:
            if not await self._invoke(attempt_id):
                await self._retry_later(attempt_id)
        return due

    async def drain(self) -> None:
        """Wait for callbacks already started by their timers."""
        while self._running:
            await asyncio.gather(*self._running)

    def _drop(self, attempt_id: UUID) -> None:
        handle = self._handles.pop(attempt_id, None)
        if handle is not None:
            handle.cancel()
        self._fire_at.pop(attempt_id, None)

    def _fire(self, attempt_id: UUID) -> None:
        self._handles.pop(attempt_id, None)
        self._fire_at.pop(attempt_id, None)
        DEADLINES_ARMED.set(len(self._handles))
        task = asyncio.get_running_loop().create_task(self._run(attempt_id))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, attempt_id: UUID) -> None:
        if not await self._invoke(attempt_id):
            await self._retry_later(attempt_id)

    async def _retry_later(self, attempt_id: UUID) -> None:
        if attempt_id in self._fire_at:
            return  # re-scheduled while the callback ran
        await self.schedule(attempt_id, self._clock() + self.RETRY_DELAY)


class RedisDeadlineScheduler(_CallbackHolder):
    """Deadlines in a Redis sorted set, drained by a polling worker."""

    KEY = "deadlines:attempts"

    def __init__(self, redis_client, *, clock: Callable[[], float] = time.time) -> None:
        super().__init__()
        self._redis = redis_client
        self._clock = clock

    async def schedule(self, attempt_id: UUID, fire_at: float) -> None:
        await self._redis.zadd(self.KEY, {str(attempt_id): fire_at})

    async def cancel(self, attempt_id: UUID) -> None:
        await self._redis.zrem(self.KEY, str(attempt_id))

    async def pending_count(self) -> int:
        return await self._redis.zcard(self.KEY)

    async def claim_due(self, now: float | None = None) -> list[UUID]:
        """Remove and return every member due at `now`.

        A member is only returned to the caller whose ZREM removed it.
        """
        now = self._clock() if now is None else now
        members = await self._redis.zrangebyscore(self.KEY, "-inf", now)
        claimed: list[UUID] = []
        for member in members:
            if await self._redis.zrem(self.KEY, member):
                claimed.append(UUID(member))
        return claimed

    async def fire_due(self, now: float | None = None) -> list[UUID]:
        now = self._clock() if now is None else now
        claimed = await self.claim_due(now)
        for attempt_id in claimed:
            if not await self._invoke(attempt_id):
                # Put it back so the next poll retries it.
                await self.schedule(attempt_id, now)
        DEADLINES_ARMED.set(await self.pending_count())
        return claimed

    async def run(self, *, poll_interval: float, stop: asyncio.Event) -> None:
        """Poll until `stop` is set."""
        logger.info("Deadline poller started (interval=%.1fs)", poll_interval)
        while not stop.is_set():
            try:
                fired = await self.fire_due()
                if fired:
                    logger.info("Fired %d deadline(s)", len(fired))
            except Exception:
                logger.exception("Deadline poll failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval)
            except TimeoutError:
                pass
        logger.info("Deadline poller stopped")
