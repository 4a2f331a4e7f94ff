"""PostgreSQL implementation of AttemptRepo.

The two invariants live in the database:
- one attempt per (assessment, taker): a unique constraint, with inserts
  done as INSERT ... ON CONFLICT DO NOTHING;
- one terminal transition: UPDATE ... WHERE status = 'in_progress', and
  rowcount 0 means another trigger already won.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_engine.db.engine import session_scope
from assessment_engine.db.tables import AnswerRow, AttemptRow
from assessment_engine.models.attempt import (
    Answer,
    Attempt,
    AttemptStatus,
    SubmitTrigger,
)

_IN_PROGRESS = AttemptStatus.IN_PROGRESS.value


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, attempt_id: UUID) -> Attempt | None:
        async with session_scope(self._session_factory) as session:
            return await _load_one(session, AttemptRow.id == attempt_id)

    async def get_for_pair(self, assessment_id: UUID, taker_id: UUID) -> Attempt | None:
        async with session_scope(self._session_factory) as session:
            return await _load_one(
                session,
                (AttemptRow.assessment_id == assessment_id)
                & (AttemptRow.taker_id == taker_id),
            )

    async def create_if_absent(self, attempt: Attempt) -> Attempt:
        async with session_scope(self._session_factory) as session:
            stmt = (
                insert(AttemptRow)
                .values(
                    id=attempt.id,
                    assessment_id=attempt.assessment_id,
                    taker_id=attempt.taker_id,
                    status=attempt.status.value,
                    started_at=attempt.started_at,
                )
                .on_conflict_do_nothing(index_elements=["assessment_id", "taker_id"])
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                existing = await _load_one(
                    session,
                    (AttemptRow.assessment_id == attempt.assessment_id)
                    & (AttemptRow.taker_id == attempt.taker_id),
                )
                if existing is None:
                    # The conflicting row was deleted between the two statements.
                    raise RuntimeError(
                        f"attempt for assessment {attempt.assessment_id} conflicted "
                        "on insert but no stored row was found"
                    )
                return existing

            for position, answer in enumerate(attempt.answers):
                session.add(_answer_to_row(attempt.id, position, answer))
            return attempt

    async def save_answer(self, attempt_id: UUID, answer: Answer) -> Attempt | None:
        async with session_scope(self._session_factory) as session:
            # Row lock: a concurrent complete_submission waits for us, or we
            # wait for it and then see status = submitted.
            locked = await session.execute(
                select(AttemptRow.id)
                .where(AttemptRow.id == attempt_id)
                .where(AttemptRow.status == _IN_PROGRESS)
                .with_for_update()
            )
            if locked.scalar_one_or_none() is None:
                return None
            result = await session.execute(
                update(AnswerRow)
                .where(AnswerRow.attempt_id == attempt_id)
                .where(AnswerRow.question_id == answer.question_id)
                .values(
                    selected_answer=answer.selected_answer,
                    time_spent=answer.time_spent,
                )
            )
            if result.rowcount == 0:
                return None
            return await _load_one(session, AttemptRow.id == attempt_id)

    async def complete_submission(self, attempt: Attempt) -> bool:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                update(AttemptRow)
                .where(AttemptRow.id == attempt.id)
                .where(AttemptRow.status == _IN_PROGRESS)
                .values(
                    status=attempt.status.value,
                    submitted_at=attempt.submitted_at,
                    submit_trigger=(
                        attempt.submit_trigger.value if attempt.submit_trigger else None
                    ),
                    score=attempt.score,
                )
            )
            if result.rowcount == 0:
                return False  # another trigger won the race
            for answer in attempt.answers:
                await session.execute(
                    update(AnswerRow)
                    .where(AnswerRow.attempt_id == attempt.id)
                    .where(AnswerRow.question_id == answer.question_id)
                    .values(
                        selected_answer=answer.selected_answer,
                        is_correct=answer.is_correct,
                        marks_awarded=answer.marks_awarded,
                    )
                )
            return True

    async def list_in_progress(self) -> list[Attempt]:
        async with session_scope(self._session_factory) as session:
            return await _load_many(session, AttemptRow.status == _IN_PROGRESS)

    async def list_submitted_by_taker(self, taker_id: UUID) -> list[Attempt]:
        async with session_scope(self._session_factory) as session:
            return await _load_many(
                session,
                (AttemptRow.taker_id == taker_id)
                & (AttemptRow.status == AttemptStatus.SUBMITTED.value),
            )

    async def list_by_assessment(self, assessment_id: UUID) -> list[Attempt]:
        async with session_scope(self._session_factory) as session:
            return await _load_many(session, AttemptRow.assessment_id == assessment_id)


async def _load_one(session: AsyncSession, where) -> Attempt | None:
    attempts = await _load_many(session, where)
    return attempts[0] if attempts else None


async def _load_many(session: AsyncSession, where) -> list[Attempt]:
    rows = (await session.execute(select(AttemptRow).where(where))).scalars().all()
    if not rows:
        return []
    answer_rows = (
        await session.execute(
            select(AnswerRow)
            .where(AnswerRow.attempt_id.in_([r.id for r in rows]))
            .order_by(AnswerRow.position)
        )
    ).scalars()
    answers: dict[UUID, list[Answer]] = {}
    for a in answer_rows:
        answers.setdefault(a.attempt_id, []).append(_row_to_answer(a))
    return [_row_to_attempt(r, answers.get(r.id, [])) for r in rows]


def _answer_to_row(attempt_id: UUID, position: int, answer: Answer) -> AnswerRow:
    return AnswerRow(
        attempt_id=attempt_id,
        question_id=answer.question_id,
        position=position,
        selected_answer=answer.selected_answer,
        is_correct=answer.is_correct,
        marks_awarded=answer.marks_awarded,
        time_spent=answer.time_spent,
    )


def _row_to_answer(row: AnswerRow) -> Answer:
    return Answer(
        question_id=row.question_id,
        selected_answer=row.selected_answer,
        is_correct=row.is_correct,
        marks_awarded=row.marks_awarded,
        time_spent=row.time_spent,
    )


def _row_to_attempt(row: AttemptRow, answers: list[Answer]) -> Attempt:
    return Attempt(
        id=row.id,
        assessment_id=row.assessment_id,
        taker_id=row.taker_id,
        started_at=row.started_at,
        answers=tuple(answers),
        status=AttemptStatus(row.status),
        submitted_at=row.submitted_at,
        submit_trigger=SubmitTrigger(row.submit_trigger) if row.submit_trigger else None,
        score=row.score,
    )
