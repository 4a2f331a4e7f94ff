"""Assemble the engine's services from configured backends.

PostgreSQL when a session factory is available, in-memory repositories
otherwise; Redis deadlines when a client is available, asyncio timers
otherwise.  Both choices are made once, here, so the services never know
which backend they run on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_engine.core.config import SETTINGS, Settings
from assessment_engine.repos.assessment_repo import AssessmentRepo, InMemoryAssessmentRepo
from assessment_engine.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from assessment_engine.repos.membership_repo import InMemoryMembershipRepo, MembershipRepo
from assessment_engine.repos.pg_assessment_repo import PgAssessmentRepo
from assessment_engine.repos.pg_attempt_repo import PgAttemptRepo
from assessment_engine.repos.pg_membership_repo import PgMembershipRepo
from assessment_engine.services.attempts import AttemptService
from assessment_engine.services.authoring import AuthoringService
from assessment_engine.services.deadline_scheduler import (
    DeadlineScheduler,
    InMemoryDeadlineScheduler,
    RedisDeadlineScheduler,
)
from assessment_engine.services.reporting import ReportingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    authoring: AuthoringService
    attempts: AttemptService
    reporting: ReportingService
    assessment_repo: AssessmentRepo
    attempt_repo: AttemptRepo
    membership_repo: MembershipRepo
    scheduler: DeadlineScheduler


def build_services(
    session_factory: async_sessionmaker[AsyncSession] | None,
    redis_client,
    *,
    clock: Callable[[], float] = time.time,
    settings: Settings = SETTINGS,
) -> Services:
    if session_factory is not None:
        assessments: AssessmentRepo = PgAssessmentRepo(session_factory)
        attempts: AttemptRepo = PgAttemptRepo(session_factory)
        memberships: MembershipRepo = PgMembershipRepo(session_factory)
        storage = "postgres"
    else:
        assessments = InMemoryAssessmentRepo()
        attempts = InMemoryAttemptRepo()
        memberships = InMemoryMembershipRepo()
        storage = "memory"

    scheduler: DeadlineScheduler
    if redis_client is not None:
        scheduler = RedisDeadlineScheduler(redis_client, clock=clock)
    else:
        scheduler = InMemoryDeadlineScheduler(clock=clock)

    logger.info(
        "Services built (storage=%s, deadlines=%s)",
        storage,
        "redis" if redis_client is not None else "memory",
    )
    return Services(
        authoring=AuthoringService(assessments=assessments),
        attempts=AttemptService(
            assessments=assessments,
            attempts=attempts,
            memberships=memberships,
            scheduler=scheduler,
            clock=clock,
            settings=settings,
        ),
        reporting=ReportingService(assessments=assessments, attempts=attempts),
        assessment_repo=assessments,
        attempt_repo=attempts,
        membership_repo=memberships,
        scheduler=scheduler,
    )


def build_default_services() -> Services:
    """Services over whatever DATABASE_URL and REDIS_URL configured."""
    from assessment_engine.db.engine import async_session_factory
    from assessment_engine.db.redis import redis_pool

    return build_services(async_session_factory, redis_pool)
