from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from uuid import UUID, uuid4

from assessment_engine.models.assessment import Assessment


class AttemptStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class SubmitTrigger(StrEnum):
    MANUAL = "manual"
    DEADLINE = "deadline"


@dataclass(frozen=True, slots=True)
class Answer:
    question_id: UUID
    selected_answer: str = ""  # "" means unanswered
    is_correct: bool | None = None
    marks_awarded: float | None = None
    time_spent: float = 0.0  # seconds, best-effort

    @property
    def is_answered(self) -> bool:
        return self.selected_answer != ""


@dataclass(frozen=True, slots=True)
class Attempt:
    """One taker's run through one assessment.

    Immutable: edits produce a new Attempt with the affected Answer
    replaced, and the repository swaps the stored value.
    """

    id: UUID
    assessment_id: UUID
    taker_id: UUID
    started_at: float
    answers: tuple[Answer, ...]  # in question order
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    submitted_at: float | None = None
    submit_trigger: SubmitTrigger | None = None
    score: float | None = None

    @property
    def is_submitted(self) -> bool:
        return self.status == AttemptStatus.SUBMITTED

    @property
    def time_spent(self) -> float:
        return sum(a.time_spent for a in self.answers)

    def answer_for(self, question_id: UUID) -> Answer | None:
        for a in self.answers:
            if a.question_id == question_id:
                return a
        return None

    def with_answer(self, answer: Answer) -> Attempt:
        answers = tuple(
            answer if a.question_id == answer.question_id else a for a in self.answers
        )
        return replace(self, answers=answers)

    @staticmethod
    def new(*, assessment: Assessment, taker_id: UUID, started_at: float) -> Attempt:
        return Attempt(
            id=uuid4(),
            assessment_id=assessment.id,
            taker_id=taker_id,
            started_at=started_at,
            answers=tuple(Answer(question_id=q.id) for q in assessment.questions),
        )


class SubmitOutcome(StrEnum):
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    attempt: Attempt
    outcome: SubmitOutcome

    @property
    def applied(self) -> bool:
        return self.outcome == SubmitOutcome.SUBMITTED


def deadline_for(attempt: Attempt, assessment: Assessment) -> float:
    return attempt.started_at + assessment.duration_seconds


def remaining_seconds(attempt: Attempt, assessment: Assessment, now: float) -> float:
    """Time left on the clock, derived from started_at alone."""
    if attempt.is_submitted:
        return 0.0
    return max(0.0, deadline_for(attempt, assessment) - now)
