"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a connection pool is
created at import time; when it is None (local dev, tests) redis_pool is
None and deadlines are tracked with in-process asyncio timers instead.

Redis holds one thing for the engine: the sorted set of pending attempt
deadlines (see services/deadline_scheduler.py).  Losing it is harmless,
since every deadline can be recomputed from started_at on the next
`rearm_deadlines()`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from assessment_engine.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,  # members come back as str, ready for UUID()
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis() -> AsyncIterator[None]:
    """Startup/shutdown hook for Redis; mirrors lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; deadlines use in-process timers")
        yield
        return

    # Fail fast: the deadline worker has nothing to do without Redis.
    await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    logger.info("Redis connected: %s", SETTINGS.redis_url)
    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
