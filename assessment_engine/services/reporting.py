"""Read models over submitted attempts.

Everything here is derived: the attempt repository is the source of truth
and these projections are recomputed on each call.  The module-level
functions are pure; ReportingService only fetches and hands them data.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from uuid import UUID

from assessment_engine.core.errors import AssessmentNotFoundError
from assessment_engine.models.assessment import Assessment
from assessment_engine.models.attempt import Attempt
from assessment_engine.models.reporting import (
    AssessmentResults,
    AttemptSummary,
    QuestionStats,
    TakerProgress,
    TakerResult,
)
from assessment_engine.repos.assessment_repo import AssessmentRepo
from assessment_engine.repos.attempt_repo import AttemptRepo


def total_marks(assessment: Assessment) -> float:
    return sum(q.marks for q in assessment.questions)


def percentage(score: float, total: float) -> float:
    if not math.isfinite(total) or total <= 0:
        return 0.0
    return score / total * 100


def summarize_attempt(attempt: Attempt, assessment: Assessment) -> AttemptSummary:
    total = total_marks(assessment)
    score = attempt.score or 0
    return AttemptSummary(
        attempt_id=attempt.id,
        assessment_id=assessment.id,
        title=assessment.title,
        score=score,
        total_marks=total,
        percentage=percentage(score, total),
        submitted_at=attempt.submitted_at or 0.0,
        time_spent=attempt.time_spent,
    )


def build_breakdown(
    attempts: Iterable[Attempt], assessments: Mapping[UUID, Assessment]
) -> list[AttemptSummary]:
    """One summary per submitted attempt, newest first.

    Attempts still in progress, or whose assessment is not in the mapping,
    are left out.
    """
    summaries = [
        summarize_attempt(a, assessments[a.assessment_id])
        for a in attempts
        if a.is_submitted and a.assessment_id in assessments
    ]
    summaries.sort(key=lambda s: s.submitted_at, reverse=True)
    return summaries


def build_taker_progress(
    taker_id: UUID, summaries: Iterable[AttemptSummary]
) -> TakerProgress:
    breakdown = tuple(summaries)
    count = len(breakdown)
    total_score = sum(s.score for s in breakdown)
    possible = sum(s.total_marks for s in breakdown)
    return TakerProgress(
        taker_id=taker_id,
        total_attempts=count,
        total_score=total_score,
        average_score=total_score / count if count else 0.0,
        total_possible_marks=possible,
        percentage=percentage(total_score, possible),
        breakdown=breakdown,
    )


def question_statistics(
    assessment: Assessment, attempts: Iterable[Attempt]
) -> list[QuestionStats]:
    submitted = [a for a in attempts if a.is_submitted]
    stats: list[QuestionStats] = []
    for question in assessment.questions:
        attempted = correct = 0
        for attempt in submitted:
            answer = attempt.answer_for(question.id)
            if answer is None:
                continue
            if answer.is_answered:
                attempted += 1
            if answer.is_correct:
                correct += 1
        stats.append(
            QuestionStats(
                question_id=question.id,
                order=question.order,
                attempted=attempted,
                correct=correct,
                correct_rate=percentage(correct, len(submitted)),
            )
        )
    return stats


class ReportingService:
    def __init__(self, *, assessments: AssessmentRepo, attempts: AttemptRepo) -> None:
        self._assessments = assessments
        self._attempts = attempts

    async def breakdown(self, taker_id: UUID) -> list[AttemptSummary]:
        attempts = await self._attempts.list_submitted_by_taker(taker_id)
        assessments: dict[UUID, Assessment] = {}
        for assessment_id in {a.assessment_id for a in attempts}:
            assessment = await self._assessments.get(assessment_id)
            if assessment is not None:
                assessments[assessment_id] = assessment
        return build_breakdown(attempts, assessments)

    async def taker_progress(self, taker_id: UUID) -> TakerProgress:
        return build_taker_progress(taker_id, await self.breakdown(taker_id))

    async def assessment_results(self, assessment_id: UUID) -> AssessmentResults:
        assessment = await self._assessments.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(f"assessment {assessment_id} not found")
        attempts = await self._attempts.list_by_assessment(assessment_id)
        summaries = build_breakdown(attempts, {assessment_id: assessment})
        by_attempt = {a.id: a for a in attempts}
        takers = tuple(
            TakerResult(
                attempt_id=s.attempt_id,
                taker_id=by_attempt[s.attempt_id].taker_id,
                score=s.score,
                percentage=s.percentage,
                submitted_at=s.submitted_at,
            )
            for s in summaries
        )
        return AssessmentResults(
            assessment_id=assessment_id,
            total_marks=total_marks(assessment),
            takers=takers,
            questions=tuple(question_statistics(assessment, attempts)),
            average_percentage=(
                sum(t.percentage for t in takers) / len(takers) if takers else 0.0
            ),
        )
