"""Deadline worker process.

RUN:  python -m assessment_engine.worker

Attempts have to be submitted when their time runs out, whether or not
the taker is still connected.  Something has to be awake at that moment;
this process is that something.

ON STARTUP
----------
`rearm_deadlines()` walks every IN_PROGRESS attempt and recomputes its
deadline from started_at + duration.  Attempts that expired while nothing
was running are submitted straight away (trigger DEADLINE); the rest are
scheduled.  No timer state has to survive a restart.

THE LOOP
--------
With REDIS_URL set, deadlines live in a Redis sorted set that any process
can add to.  The worker polls it every DEADLINE_POLL_INTERVAL seconds,
claims due members with ZREM and submits them.  Running two workers is
safe: ZREM hands each member to exactly one of them, and the attempt
repository's compare-and-set makes a duplicate submit a no-op anyway.

Without Redis the worker keeps asyncio timers in its own event loop, which
is only useful when this process is also the one creating attempts.

METRICS
-------
Set METRICS_PORT to serve the Prometheus default registry over HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from prometheus_client import start_http_server

from assessment_engine.core.config import SETTINGS
from assessment_engine.core.logging import setup_logging
from assessment_engine.db.engine import lifespan_db
from assessment_engine.db.redis import lifespan_redis
from assessment_engine.services.deadline_scheduler import RedisDeadlineScheduler
from assessment_engine.wiring import build_default_services

logger = logging.getLogger("worker")


async def run_worker(stop: asyncio.Event | None = None) -> None:
    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass  # not on the main thread, or unsupported platform

    async with lifespan_db(), lifespan_redis():
        services = build_default_services()
        scheduled = await services.attempts.rearm_deadlines()
        logger.info("Worker started; %d deadline(s) pending", scheduled)

        if isinstance(services.scheduler, RedisDeadlineScheduler):
            await services.scheduler.run(
                poll_interval=SETTINGS.deadline_poll_interval, stop=stop
            )
        else:
            await stop.wait()

    logger.info("Worker stopped")


def main() -> None:
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    if SETTINGS.metrics_port is not None:
        start_http_server(SETTINGS.metrics_port)
        logger.info("Metrics served on :%d", SETTINGS.metrics_port)
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
