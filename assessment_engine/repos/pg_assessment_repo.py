"""PostgreSQL implementation of AssessmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_engine.db.engine import session_scope
from assessment_engine.db.tables import AssessmentRow, QuestionRow
from assessment_engine.models.access import (
    AccessPolicy,
    ClassRestricted,
    CodeRestricted,
    EmailRestricted,
    Public,
    policy_kind,
)
from assessment_engine.models.assessment import Assessment, AssessmentStatus
from assessment_engine.models.question import (
    Question,
    QuestionType,
    parse_correct_answer,
)


class PgAssessmentRepo:
    """Satisfies the AssessmentRepo Protocol using PostgreSQL.

    Questions are written once, with the assessment; update() rewrites the
    assessment row only (status, policy, title, description, duration).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, assessment_id: UUID) -> Assessment | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(AssessmentRow, assessment_id)
            if row is None:
                return None
            questions = await _load_questions(session, [assessment_id])
            return _row_to_assessment(row, questions.get(assessment_id, []))

    async def add(self, assessment: Assessment) -> None:
        async with session_scope(self._session_factory) as session:
            session.add(
                AssessmentRow(
                    id=assessment.id,
                    owner_id=assessment.owner_id,
                    title=assessment.title,
                    description=assessment.description,
                    duration_seconds=assessment.duration_seconds,
                    status=assessment.status.value,
                    **_policy_columns(assessment.access_policy),
                )
            )
            # Parent row first so the questions' foreign key resolves.
            await session.flush()
            for q in assessment.questions:
                session.add(
                    QuestionRow(
                        id=q.id,
                        assessment_id=assessment.id,
                        position=q.order,
                        text=q.text,
                        type=q.type.value,
                        options=list(q.options),
                        correct_answer=q.correct_answer.encode(),
                        marks=q.marks,
                        explanation=q.explanation,
                    )
                )

    async def update(self, assessment: Assessment) -> None:
        async with session_scope(self._session_factory) as session:
            stmt = (
                update(AssessmentRow)
                .where(AssessmentRow.id == assessment.id)
                .values(
                    title=assessment.title,
                    description=assessment.description,
                    duration_seconds=assessment.duration_seconds,
                    status=assessment.status.value,
                    **_policy_columns(assessment.access_policy),
                )
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise KeyError(assessment.id)

    async def list_by_owner(self, owner_id: UUID) -> list[Assessment]:
        async with session_scope(self._session_factory) as session:
            stmt = select(AssessmentRow).where(AssessmentRow.owner_id == owner_id)
            rows = (await session.execute(stmt)).scalars().all()
            questions = await _load_questions(session, [r.id for r in rows])
            return [_row_to_assessment(r, questions.get(r.id, [])) for r in rows]


async def _load_questions(
    session: AsyncSession, assessment_ids: list[UUID]
) -> dict[UUID, list[Question]]:
    if not assessment_ids:
        return {}
    stmt = (
        select(QuestionRow)
        .where(QuestionRow.assessment_id.in_(assessment_ids))
        .order_by(QuestionRow.position)
    )
    grouped: dict[UUID, list[Question]] = {}
    for row in (await session.execute(stmt)).scalars():
        grouped.setdefault(row.assessment_id, []).append(_row_to_question(row))
    return grouped


def _row_to_question(row: QuestionRow) -> Question:
    type = QuestionType(row.type)
    return Question(
        id=row.id,
        text=row.text,
        type=type,
        options=tuple(row.options or ()),
        correct_answer=parse_correct_answer(type, row.correct_answer),
        marks=row.marks,
        order=row.position,
        explanation=row.explanation,
    )


def _row_to_assessment(row: AssessmentRow, questions: list[Question]) -> Assessment:
    return Assessment(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        questions=tuple(questions),
        duration_seconds=row.duration_seconds,
        access_policy=_row_to_policy(row),
        status=AssessmentStatus(row.status),
        description=row.description,
    )


def _policy_columns(policy: AccessPolicy) -> dict:
    columns: dict = {
        "policy_kind": policy_kind(policy),
        "policy_group_id": None,
        "policy_code": None,
        "policy_emails": [],
    }
    match policy:
        case ClassRestricted(group_id=group_id):
            columns["policy_group_id"] = group_id
        case CodeRestricted(code=code):
            columns["policy_code"] = code
        case EmailRestricted(allowed_emails=emails):
            columns["policy_emails"] = sorted(emails)
    return columns


def _row_to_policy(row: AssessmentRow) -> AccessPolicy:
    match row.policy_kind:
        case "class":
            return ClassRestricted(row.policy_group_id)
        case "code":
            return CodeRestricted(row.policy_code or "")
        case "email":
            return EmailRestricted(frozenset(row.policy_emails or ()))
        case "public":
            return Public()
    raise ValueError(f"unknown access policy kind {row.policy_kind!r}")
