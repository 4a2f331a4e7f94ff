from __future__ import annotations

from typing import Protocol
from uuid import UUID

from assessment_engine.models.attempt import Answer, Attempt, AttemptStatus


class AttemptRepo(Protocol):
    """Storage for attempts.

    Implementations enforce two invariants at the storage boundary: one
    attempt per (assessment, taker), and no writes once SUBMITTED.
    """

    async def get(self, attempt_id: UUID) -> Attempt | None: ...

    async def get_for_pair(
        self, assessment_id: UUID, taker_id: UUID
    ) -> Attempt | None: ...

    async def create_if_absent(self, attempt: Attempt) -> Attempt:
        """Store attempt unless its pair already has one; return the stored one."""
        ...

    async def save_answer(self, attempt_id: UUID, answer: Answer) -> Attempt | None:
        """Replace one answer. None if the attempt is missing or not in progress."""
        ...

    async def complete_submission(self, attempt: Attempt) -> bool:
        """Compare-and-set IN_PROGRESS -> SUBMITTED with the scored attempt.

        Returns False when the stored attempt was no longer in progress
        (another trigger won).
        """
        ...

    async def list_in_progress(self) -> list[Attempt]: ...
    async def list_submitted_by_taker(self, taker_id: UUID) -> list[Attempt]: ...
    async def list_by_assessment(self, assessment_id: UUID) -> list[Attempt]: ...


class InMemoryAttemptRepo:
    # No awaits inside the check-and-write methods, so each one runs
    # atomically with respect to other coroutines on the loop.

    def __init__(self) -> None:
        self._by_id: dict[UUID, Attempt] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}

    async def get(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def get_for_pair(self, assessment_id: UUID, taker_id: UUID) -> Attempt | None:
        attempt_id = self._by_pair.get((assessment_id, taker_id))
        return self._by_id.get(attempt_id) if attempt_id is not None else None

    async def create_if_absent(self, attempt: Attempt) -> Attempt:
        key = (attempt.assessment_id, attempt.taker_id)
        existing = self._by_pair.get(key)
        if existing is not None:
            return self._by_id[existing]
        self._by_pair[key] = attempt.id
        self._by_id[attempt.id] = attempt
        return attempt

    async def save_answer(self, attempt_id: UUID, answer: Answer) -> Attempt | None:
        current = self._by_id.get(attempt_id)
        if current is None or current.status != AttemptStatus.IN_PROGRESS:
            return None
        if current.answer_for(answer.question_id) is None:
            return None
        updated = current.with_answer(answer)
        self._by_id[attempt_id] = updated
        return updated

    async def complete_submission(self, attempt: Attempt) -> bool:
        current = self._by_id.get(attempt.id)
        if current is None or current.status != AttemptStatus.IN_PROGRESS:
            return False
        self._by_id[attempt.id] = attempt
        return True

    async def list_in_progress(self) -> list[Attempt]:
        return [
            a for a in self._by_id.values() if a.status == AttemptStatus.IN_PROGRESS
        ]

    async def list_submitted_by_taker(self, taker_id: UUID) -> list[Attempt]:
        return [
            a
            for a in self._by_id.values()
            if a.taker_id == taker_id and a.status == AttemptStatus.SUBMITTED
        ]

    async def list_by_assessment(self, assessment_id: UUID) -> list[Attempt]:
        return [a for a in self._by_id.values() if a.assessment_id == assessment_id]
