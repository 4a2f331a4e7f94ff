from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class AttemptSummary:
    attempt_id: UUID
    assessment_id: UUID
    title: str
    score: float
    total_marks: float
    percentage: float
    submitted_at: float
    time_spent: float


@dataclass(frozen=True, slots=True)
class TakerProgress:
    """Roll-up across every submitted attempt of one taker."""

    taker_id: UUID
    total_attempts: int
    total_score: float
    average_score: float
    total_possible_marks: float
    percentage: float
    breakdown: tuple[AttemptSummary, ...]


@dataclass(frozen=True, slots=True)
class QuestionStats:
    question_id: UUID
    order: int
    attempted: int  # submitted attempts with a non-empty answer
    correct: int
    correct_rate: float  # percent of submitted attempts, 0 when none


@dataclass(frozen=True, slots=True)
class TakerResult:
    attempt_id: UUID
    taker_id: UUID
    score: float
    percentage: float
    submitted_at: float


@dataclass(frozen=True, slots=True)
class AssessmentResults:
    assessment_id: UUID
    total_marks: float
    takers: tuple[TakerResult, ...]
    questions: tuple[QuestionStats, ...]
    average_percentage: float
