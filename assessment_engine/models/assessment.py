from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID, uuid4

from assessment_engine.models.access import AccessPolicy
from assessment_engine.models.question import Question


class AssessmentStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class Assessment:
    id: UUID
    owner_id: UUID
    title: str
    questions: tuple[Question, ...]  # sorted by Question.order
    duration_seconds: int
    access_policy: AccessPolicy
    status: AssessmentStatus = AssessmentStatus.DRAFT
    description: str = ""

    def question(self, question_id: UUID) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    @staticmethod
    def new(
        *,
        owner_id: UUID,
        title: str,
        questions: tuple[Question, ...] | list[Question],
        duration_seconds: int,
        access_policy: AccessPolicy,
        description: str = "",
    ) -> Assessment:
        return Assessment(
            id=uuid4(),
            owner_id=owner_id,
            title=title,
            questions=tuple(sorted(questions, key=lambda q: q.order)),
            duration_seconds=duration_seconds,
            access_policy=access_policy,
            description=description,
        )
