"""Attempt lifecycle: start or resume, answer, submit, deadlines.

An attempt moves IN_PROGRESS -> SUBMITTED exactly once.  Three things can
ask for that move: the taker pressing submit, the deadline timer, and any
operation that notices the deadline has already passed.  All of them go
through `_submit_locked`, which

  1. holds the per-attempt asyncio.Lock (serializes this process), and
  2. writes through `AttemptRepo.complete_submission`, a compare-and-set on
     status (serializes every process sharing the repository).

Whoever loses either race gets the stored attempt back with outcome
ALREADY_SUBMITTED; that is a normal return, not an error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from assessment_engine.core.config import SETTINGS, Settings
from assessment_engine.core.context import attempt_context
from assessment_engine.core.errors import (
    AccessDeniedError,
    AssessmentNotFoundError,
    AttemptNotFoundError,
    InvalidStateError,
    NotAvailableError,
    UnknownQuestionError,
)
from assessment_engine.core.metrics import (
    ACCESS_DENIALS,
    ATTEMPTS_RESUMED,
    ATTEMPTS_STARTED,
    SUBMISSIONS,
    SUBMIT_RACES_LOST,
)
from assessment_engine.models.access import (
    ClassRestricted,
    Deny,
    Requester,
    policy_kind,
)
from assessment_engine.models.assessment import Assessment, AssessmentStatus
from assessment_engine.models.attempt import (
    Answer,
    Attempt,
    AttemptStatus,
    SubmissionResult,
    SubmitOutcome,
    SubmitTrigger,
    deadline_for,
)
from assessment_engine.models.attempt import remaining_seconds as _remaining
from assessment_engine.repos.assessment_repo import AssessmentRepo
from assessment_engine.repos.attempt_repo import AttemptRepo
from assessment_engine.repos.membership_repo import MembershipRepo
from assessment_engine.services.access_policy import evaluate
from assessment_engine.services.deadline_scheduler import DeadlineScheduler
from assessment_engine.services.scoring import grade_attempt

logger = logging.getLogger(__name__)


class AttemptService:
    def __init__(
        self,
        *,
        assessments: AssessmentRepo,
        attempts: AttemptRepo,
        memberships: MembershipRepo,
        scheduler: DeadlineScheduler,
        clock: Callable[[], float] = time.time,
        settings: Settings = SETTINGS,
    ) -> None:
        self._assessments = assessments
        self._attempts = attempts
        self._memberships = memberships
        self._scheduler = scheduler
        self._clock = clock
        self._tolerance = settings.numeric_tolerance
        self._recheck_access = settings.recheck_access_on_submit
        self._locks: dict[UUID, asyncio.Lock] = {}
        scheduler.bind(self._on_deadline)

    # -- public operations --------------------------------------------------

    async def create_or_resume(self, assessment_id: UUID, requester: Requester) -> Attempt:
        assessment = await self._require_assessment(assessment_id)
        if assessment.status != AssessmentStatus.ACTIVE:
            logger.warning(
                "Assessment %s not available (status=%s)", assessment_id, assessment.status
            )
            raise NotAvailableError(f"assessment is {assessment.status}")
        await self._check_access(assessment, requester)

        existing = await self._attempts.get_for_pair(assessment_id, requester.taker_id)
        if existing is not None:
            ATTEMPTS_RESUMED.inc()
            return await self._expire_if_due(existing, assessment)

        attempt = Attempt.new(
            assessment=assessment, taker_id=requester.taker_id, started_at=self._clock()
        )
        stored = await self._attempts.create_if_absent(attempt)
        if stored.id != attempt.id:
            # A concurrent call for the same pair created it first.
            ATTEMPTS_RESUMED.inc()
            return await self._expire_if_due(stored, assessment)

        ATTEMPTS_STARTED.inc()
        with attempt_context(stored.id):
            logger.info(
                "Attempt started",
                extra={
                    "assessment_id": str(assessment_id),
                    "taker_id": str(requester.taker_id),
                },
            )
        await self._scheduler.schedule(stored.id, deadline_for(stored, assessment))
        return stored

    async def set_answer(
        self,
        attempt_id: UUID,
        question_id: UUID,
        answer_text: str,
        *,
        time_spent: float = 0.0,
    ) -> Attempt:
        """Replace one answer.  An empty string clears it.

        The text is stored as given; it is only interpreted at grading time.
        time_spent is added to what the answer already carries.
        """
        with attempt_context(attempt_id):
            await self._require_attempt(attempt_id)
            async with self._lock_for(attempt_id):
                attempt = await self._require_attempt(attempt_id)
                if attempt.is_submitted:
                    self._discard_lock(attempt_id)
                    raise InvalidStateError("attempt already submitted")
                assessment = await self._require_assessment(attempt.assessment_id)
                if assessment.question(question_id) is None:
                    logger.warning("Unknown question %s", question_id)
                    raise UnknownQuestionError(f"question {question_id} is not in this assessment")

                if self._clock() >= deadline_for(attempt, assessment):
                    await self._submit_locked(attempt, assessment, SubmitTrigger.DEADLINE)
                    raise InvalidStateError("deadline passed; attempt submitted")

                current = attempt.answer_for(question_id) or Answer(question_id=question_id)
                answer = replace(
                    current,
                    selected_answer=answer_text,
                    time_spent=current.time_spent + time_spent,
                )
                updated = await self._attempts.save_answer(attempt_id, answer)
                if updated is None:
                    # Another process submitted it between our read and write.
                    self._discard_lock(attempt_id)
                    raise InvalidStateError("attempt already submitted")
                return updated

    async def clear_answer(self, attempt_id: UUID, question_id: UUID) -> Attempt:
        return await self.set_answer(attempt_id, question_id, "")

    async def submit(
        self,
        attempt_id: UUID,
        trigger: SubmitTrigger = SubmitTrigger.MANUAL,
        *,
        requester: Requester | None = None,
    ) -> SubmissionResult:
        """Apply the terminal transition, or report that it already happened.

        When a requester is given on a manual submit, the access policy is
        evaluated again first and a denial leaves the attempt untouched.
        """
        with attempt_context(attempt_id):
            await self._require_attempt(attempt_id)
            async with self._lock_for(attempt_id):
                attempt = await self._require_attempt(attempt_id)
                if attempt.is_submitted:
                    return self._already_submitted(attempt, trigger)
                assessment = await self._require_assessment(attempt.assessment_id)
                trigger = self._effective_trigger(attempt, assessment, trigger)
                if (
                    trigger == SubmitTrigger.MANUAL
                    and requester is not None
                    and self._recheck_access
                ):
                    await self._check_access(assessment, requester)
                return await self._submit_locked(attempt, assessment, trigger)

    async def remaining_seconds(self, attempt_id: UUID) -> float:
        attempt = await self._require_attempt(attempt_id)
        assessment = await self._require_assessment(attempt.assessment_id)
        return _remaining(attempt, assessment, self._clock())

    async def rearm_deadlines(self) -> int:
        """Rebuild deadline timers from stored attempts after a restart.

        Expired attempts are submitted with trigger DEADLINE; the rest are
        scheduled at started_at + duration.  Returns how many were scheduled.
        """
        now = self._clock()
        scheduled = expired = 0
        for attempt in await self._attempts.list_in_progress():
            assessment = await self._assessments.get(attempt.assessment_id)
            if assessment is None:
                logger.warning(
                    "Attempt %s references missing assessment %s",
                    attempt.id,
                    attempt.assessment_id,
                )
                continue
            deadline = deadline_for(attempt, assessment)
            if now >= deadline:
                await self.submit(attempt.id, SubmitTrigger.DEADLINE)
                expired += 1
            else:
                await self._scheduler.schedule(attempt.id, deadline)
                scheduled += 1
        logger.info("Deadlines re-armed: %d scheduled, %d expired", scheduled, expired)
        return scheduled

    # -- internals -----------------------------------------------------------

    async def _on_deadline(self, attempt_id: UUID) -> None:
        try:
            await self.submit(attempt_id, SubmitTrigger.DEADLINE)
        except AttemptNotFoundError:
            logger.warning("Deadline fired for unknown attempt %s", attempt_id)

    def _lock_for(self, attempt_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(attempt_id)
        if lock is None:
            lock = self._locks[attempt_id] = asyncio.Lock()
        return lock

    def _discard_lock(self, attempt_id: UUID) -> None:
        # Once SUBMITTED nothing mutates the attempt again; callers still
        # holding the old lock only observe the terminal state.
        self._locks.pop(attempt_id, None)

    def _effective_trigger(
        self, attempt: Attempt, assessment: Assessment, trigger: SubmitTrigger
    ) -> SubmitTrigger:
        # A manual submit that arrives after time is up is recorded as the
        # deadline submission it would have been.
        if trigger == SubmitTrigger.MANUAL and self._clock() >= deadline_for(
            attempt, assessment
        ):
            return SubmitTrigger.DEADLINE
        return trigger

    async def _submit_locked(
        self, attempt: Attempt, assessment: Assessment, trigger: SubmitTrigger
    ) -> SubmissionResult:
        now = self._clock()
        submitted = replace(
            attempt,
            status=AttemptStatus.SUBMITTED,
            submitted_at=now,
            submit_trigger=trigger,
        )
        graded = grade_attempt(submitted, assessment, tolerance=self._tolerance)

        if not await self._attempts.complete_submission(graded):
            stored = await self._require_attempt(attempt.id)
            return self._already_submitted(stored, trigger)

        SUBMISSIONS.labels(trigger=trigger.value).inc()
        await self._scheduler.cancel(attempt.id)
        self._discard_lock(attempt.id)
        logger.info(
            "Attempt submitted score=%s",
            graded.score,
            extra={
                "assessment_id": str(attempt.assessment_id),
                "taker_id": str(attempt.taker_id),
                "trigger": trigger.value,
            },
        )
        return SubmissionResult(graded, SubmitOutcome.SUBMITTED)

    def _already_submitted(self, stored: Attempt, trigger: SubmitTrigger) -> SubmissionResult:
        self._discard_lock(stored.id)
        SUBMIT_RACES_LOST.labels(trigger=trigger.value).inc()
        logger.info("Submit ignored, attempt already submitted", extra={"trigger": trigger.value})
        return SubmissionResult(stored, SubmitOutcome.ALREADY_SUBMITTED)

    async def _expire_if_due(self, attempt: Attempt, assessment: Assessment) -> Attempt:
        if attempt.is_submitted or self._clock() < deadline_for(attempt, assessment):
            return attempt
        result = await self.submit(attempt.id, SubmitTrigger.DEADLINE)
        return result.attempt

    async def _check_access(self, assessment: Assessment, requester: Requester) -> None:
        policy = assessment.access_policy
        if isinstance(policy, ClassRestricted):
            enrolled = await self._memberships.is_member(policy.group_id, requester.taker_id)
            requester = replace(
                requester,
                group_ids=frozenset({policy.group_id}) if enrolled else frozenset(),
            )
        decision = evaluate(policy, requester)
        if isinstance(decision, Deny):
            ACCESS_DENIALS.labels(policy=policy_kind(policy)).inc()
            logger.warning(
                "Access denied to assessment %s: %s",
                assessment.id,
                decision.reason,
                extra={"taker_id": str(requester.taker_id)},
            )
            raise AccessDeniedError(decision.reason)

    async def _require_assessment(self, assessment_id: UUID) -> Assessment:
        assessment = await self._assessments.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(f"assessment {assessment_id} not found")
        return assessment

    async def _require_attempt(self, attempt_id: UUID) -> Attempt:
        attempt = await self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"attempt {attempt_id} not found")
        return attempt
