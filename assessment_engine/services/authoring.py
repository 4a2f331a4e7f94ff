"""Assembling assessments and moving them through their status lifecycle.

    DRAFT --publish--> ACTIVE --close--> COMPLETED

Only ACTIVE assessments accept new attempts.  Attempts already in progress
when an assessment is closed keep running until they are submitted.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import replace
from uuid import UUID

from assessment_engine.core.errors import (
    AssessmentNotFoundError,
    AuthoringError,
    InvalidStateError,
)
from assessment_engine.models.access import AccessPolicy, CodeRestricted, policy_kind
from assessment_engine.models.assessment import Assessment, AssessmentStatus
from assessment_engine.models.question import (
    LabelSet,
    NumericValue,
    Question,
    QuestionType,
    SingleLabel,
    choice_problem,
    referenced_labels,
)
from assessment_engine.repos.assessment_repo import AssessmentRepo

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[AssessmentStatus, AssessmentStatus] = {
    AssessmentStatus.DRAFT: AssessmentStatus.ACTIVE,
    AssessmentStatus.ACTIVE: AssessmentStatus.COMPLETED,
}

_ANSWER_SHAPES = {
    QuestionType.SINGLE_CHOICE: SingleLabel,
    QuestionType.MULTI_CHOICE: LabelSet,
    QuestionType.NUMERIC: NumericValue,
}


def question_problem(question: Question) -> str | None:
    if not question.text.strip():
        return "question text is required"
    if not math.isfinite(question.marks) or question.marks <= 0:
        return "marks must be positive"
    if question.order <= 0:
        return "order must be a positive integer"
    if not isinstance(question.correct_answer, _ANSWER_SHAPES[question.type]):
        return f"correct answer does not fit a {question.type} question"
    if question.type == QuestionType.NUMERIC:
        if question.options:
            return "numeric questions take no options"
        return None
    if isinstance(question.correct_answer, LabelSet) and not question.correct_answer.labels:
        return "at least one correct option is required"
    return choice_problem(question.options, referenced_labels(question.correct_answer))


def build_assessment(
    *,
    owner_id: UUID,
    title: str,
    questions: Iterable[Question],
    duration_seconds: int,
    access_policy: AccessPolicy,
    description: str = "",
) -> Assessment:
    """Validate the parts and assemble a DRAFT assessment.

    Raises AuthoringError naming the first problem found.
    """
    questions = list(questions)
    if not title.strip():
        raise AuthoringError("title is required")
    if duration_seconds <= 0:
        raise AuthoringError("duration_seconds must be positive")
    if not questions:
        raise AuthoringError("an assessment needs at least one question")
    if isinstance(access_policy, CodeRestricted) and not access_policy.code:
        raise AuthoringError("an access code is required")

    orders = [q.order for q in questions]
    if len(set(orders)) != len(orders):
        raise AuthoringError("question order values must be unique")
    ids = [q.id for q in questions]
    if len(set(ids)) != len(ids):
        raise AuthoringError("question ids must be unique")

    for question in questions:
        problem = question_problem(question)
        if problem:
            raise AuthoringError(f"question {question.order}: {problem}")

    return Assessment.new(
        owner_id=owner_id,
        title=title.strip(),
        questions=questions,
        duration_seconds=duration_seconds,
        access_policy=access_policy,
        description=description,
    )


class AuthoringService:
    def __init__(self, *, assessments: AssessmentRepo) -> None:
        self._assessments = assessments

    async def create(
        self,
        *,
        owner_id: UUID,
        title: str,
        questions: Iterable[Question],
        duration_seconds: int,
        access_policy: AccessPolicy,
        description: str = "",
    ) -> Assessment:
        try:
            assessment = build_assessment(
                owner_id=owner_id,
                title=title,
                questions=questions,
                duration_seconds=duration_seconds,
                access_policy=access_policy,
                description=description,
            )
        except AuthoringError as exc:
            logger.warning("Rejected assessment from owner=%s: %s", owner_id, exc)
            raise
        await self._assessments.add(assessment)
        logger.info(
            "Created assessment id=%s questions=%d policy=%s",
            assessment.id,
            len(assessment.questions),
            policy_kind(access_policy),
        )
        return assessment

    async def publish(self, assessment_id: UUID) -> Assessment:
        return await self._transition(assessment_id, AssessmentStatus.ACTIVE)

    async def close(self, assessment_id: UUID) -> Assessment:
        return await self._transition(assessment_id, AssessmentStatus.COMPLETED)

    async def update_access_policy(
        self, assessment_id: UUID, policy: AccessPolicy
    ) -> Assessment:
        """Swap the policy.  Takes effect on the next start or checked submit."""
        assessment = await self._require(assessment_id)
        if assessment.status == AssessmentStatus.COMPLETED:
            raise InvalidStateError("assessment is completed")
        if isinstance(policy, CodeRestricted) and not policy.code:
            raise AuthoringError("an access code is required")
        updated = replace(assessment, access_policy=policy)
        await self._assessments.update(updated)
        logger.info(
            "Access policy for assessment %s set to %s", assessment_id, policy_kind(policy)
        )
        return updated

    async def _transition(
        self, assessment_id: UUID, target: AssessmentStatus
    ) -> Assessment:
        assessment = await self._require(assessment_id)
        if _TRANSITIONS.get(assessment.status) != target:
            logger.warning(
                "Rejected status change %s -> %s for assessment %s",
                assessment.status,
                target,
                assessment_id,
            )
            raise InvalidStateError(f"cannot move from {assessment.status} to {target}")
        updated = replace(assessment, status=target)
        await self._assessments.update(updated)
        logger.info("Assessment %s is now %s", assessment_id, target)
        return updated

    async def _require(self, assessment_id: UUID) -> Assessment:
        assessment = await self._assessments.get(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(f"assessment {assessment_id} not found")
        return assessment
