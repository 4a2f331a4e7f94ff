"""Deadline scheduler tests.

The Redis scheduler is exercised against a small in-test double that
implements the four sorted-set commands it uses (ZADD, ZREM,
ZRANGEBYSCORE, ZCARD) with redis-py's async signatures.
"""

from __future__ import annotations

import asyncio
from uuid import UUID, uuid4

from assessment_engine.services.deadline_scheduler import (
    DeadlineScheduler,
    InMemoryDeadlineScheduler,
    RedisDeadlineScheduler,
)
from tests.conftest import T0, FakeClock


class _SortedSetRedis:
    def __init__(self) -> None:
        self.sets: dict[str, dict[str, float]] = {}

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self.sets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update(mapping)
        return added

    async def zrem(self, key: str, *members: str) -> int:
        zset = self.sets.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zrangebyscore(self, key: str, min: str, max: float) -> list[str]:
        zset = self.sets.get(key, {})
        return [m for m, score in sorted(zset.items(), key=lambda kv: kv[1]) if score <= max]

    async def zcard(self, key: str) -> int:
        return len(self.sets.get(key, {}))


class _Recorder:
    def __init__(self) -> None:
        self.fired: list[UUID] = []

    async def __call__(self, attempt_id: UUID) -> None:
        self.fired.append(attempt_id)


def test_both_schedulers_satisfy_protocol() -> None:
    assert isinstance(InMemoryDeadlineScheduler(), DeadlineScheduler)
    assert isinstance(RedisDeadlineScheduler(_SortedSetRedis()), DeadlineScheduler)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


def test_in_memory_fire_due_runs_only_due_deadlines() -> None:
    clock = FakeClock()
    scheduler = InMemoryDeadlineScheduler(clock=clock)
    recorder = _Recorder()
    scheduler.bind(recorder)
    early, late = uuid4(), uuid4()

    async def scenario():
        await scheduler.schedule(early, T0 + 10)
        await scheduler.schedule(late, T0 + 100)
        clock.advance(10)
        return await scheduler.fire_due()

    assert asyncio.run(scenario()) == [early]
    assert recorder.fired == [early]
    assert scheduler.pending() == {late: T0 + 100}


def test_in_memory_reschedule_replaces_previous_deadline() -> None:
    scheduler = InMemoryDeadlineScheduler(clock=FakeClock())
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0 + 10)
        await scheduler.schedule(attempt_id, T0 + 20)

    asyncio.run(scenario())
    assert scheduler.pending() == {attempt_id: T0 + 20}


def test_in_memory_cancel_prevents_firing() -> None:
    clock = FakeClock()
    scheduler = InMemoryDeadlineScheduler(clock=clock)
    recorder = _Recorder()
    scheduler.bind(recorder)
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0 + 1)
        await scheduler.cancel(attempt_id)
        clock.advance(5)
        return await scheduler.fire_due()

    assert asyncio.run(scenario()) == []
    assert recorder.fired == []


def test_in_memory_timer_fires_on_the_event_loop() -> None:
    scheduler = InMemoryDeadlineScheduler()
    recorder = _Recorder()
    scheduler.bind(recorder)
    attempt_id = uuid4()

    async def scenario():
        # A deadline already in the past fires on the next loop iteration.
        await scheduler.schedule(attempt_id, 0)
        await asyncio.sleep(0.05)
        await scheduler.drain()

    asyncio.run(scenario())
    assert recorder.fired == [attempt_id]
    assert scheduler.pending() == {}


def test_callback_failure_is_logged_not_raised(caplog) -> None:
    clock = FakeClock()
    scheduler = InMemoryDeadlineScheduler(clock=clock)

    async def boom(attempt_id: UUID) -> None:
        raise RuntimeError("storage down")

    scheduler.bind(boom)
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0)
        return await scheduler.fire_due()

    assert asyncio.run(scenario()) == [attempt_id]
    assert "Deadline callback failed" in caplog.text
    assert scheduler.pending() == {
        attempt_id: T0 + InMemoryDeadlineScheduler.RETRY_DELAY
    }


def test_in_memory_failed_callback_is_rearmed_for_retry() -> None:
    clock = FakeClock()
    scheduler = InMemoryDeadlineScheduler(clock=clock)
    attempts: list[UUID] = []

    async def flaky(attempt_id: UUID) -> None:
        attempts.append(attempt_id)
        if len(attempts) == 1:
            raise RuntimeError("database unavailable")

    scheduler.bind(flaky)
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0)
        await scheduler.fire_due()
        early = await scheduler.fire_due()
        clock.advance(InMemoryDeadlineScheduler.RETRY_DELAY)
        retried = await scheduler.fire_due()
        return early, retried

    assert asyncio.run(scenario()) == ([], [attempt_id])
    assert attempts == [attempt_id, attempt_id]
    assert scheduler.pending() == {}


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


def test_redis_schedule_and_cancel_use_sorted_set() -> None:
    redis = _SortedSetRedis()
    scheduler = RedisDeadlineScheduler(redis, clock=FakeClock())
    a, b = uuid4(), uuid4()

    async def scenario():
        await scheduler.schedule(a, T0 + 5)
        await scheduler.schedule(b, T0 + 50)
        await scheduler.cancel(b)
        return await scheduler.pending_count()

    assert asyncio.run(scenario()) == 1
    assert redis.sets[RedisDeadlineScheduler.KEY] == {str(a): T0 + 5}


def test_redis_claim_due_hands_each_member_to_one_worker() -> None:
    redis = _SortedSetRedis()
    clock = FakeClock()
    first = RedisDeadlineScheduler(redis, clock=clock)
    second = RedisDeadlineScheduler(redis, clock=clock)
    due, not_yet = uuid4(), uuid4()

    async def scenario():
        await first.schedule(due, T0 + 1)
        await first.schedule(not_yet, T0 + 100)
        clock.advance(1)
        return await asyncio.gather(first.claim_due(), second.claim_due())

    a, b = asyncio.run(scenario())
    assert sorted(a + b) == [due]
    assert redis.sets[RedisDeadlineScheduler.KEY] == {str(not_yet): T0 + 100}


def test_redis_fire_due_invokes_callback() -> None:
    redis = _SortedSetRedis()
    clock = FakeClock()
    scheduler = RedisDeadlineScheduler(redis, clock=clock)
    recorder = _Recorder()
    scheduler.bind(recorder)
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0)
        return await scheduler.fire_due()

    assert asyncio.run(scenario()) == [attempt_id]
    assert recorder.fired == [attempt_id]
    assert redis.sets[RedisDeadlineScheduler.KEY] == {}


def test_redis_failed_callback_is_put_back_for_retry() -> None:
    redis = _SortedSetRedis()
    clock = FakeClock()
    scheduler = RedisDeadlineScheduler(redis, clock=clock)
    attempts: list[UUID] = []

    async def flaky(attempt_id: UUID) -> None:
        attempts.append(attempt_id)
        if len(attempts) == 1:
            raise RuntimeError("database unavailable")

    scheduler.bind(flaky)
    attempt_id = uuid4()

    async def scenario():
        await scheduler.schedule(attempt_id, T0)
        await scheduler.fire_due()
        left = await scheduler.pending_count()
        await scheduler.fire_due()
        return left, await scheduler.pending_count()

    assert asyncio.run(scenario()) == (1, 0)
    assert attempts == [attempt_id, attempt_id]


def test_redis_run_polls_until_stopped() -> None:
    redis = _SortedSetRedis()
    scheduler = RedisDeadlineScheduler(redis)
    recorder = _Recorder()
    scheduler.bind(recorder)
    attempt_id = uuid4()

    async def scenario():
        stop = asyncio.Event()
        await scheduler.schedule(attempt_id, 0)
        poller = asyncio.create_task(scheduler.run(poll_interval=0.01, stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(poller, timeout=1)

    asyncio.run(scenario())
    assert recorder.fired == [attempt_id]
