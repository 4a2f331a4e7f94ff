"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in assessment_engine/models/.
The domain models stay as-is; these tables are the persistence layer.
Repos convert between SQLAlchemy rows and domain dataclasses.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from assessment_engine.db.engine import Base


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft"
    )  # draft|active|completed
    policy_kind: Mapped[str] = mapped_column(
        String(16), nullable=False
    )  # class|public|code|email
    policy_group_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    policy_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    policy_emails: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assessments.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # single_choice|multi_choice|numeric
    options: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=[])
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)  # encoded form
    marks: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("assessment_id", "position"),)


class AttemptRow(Base):
    __tablename__ = "attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assessments.id"), nullable=False
    )
    taker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="in_progress", index=True
    )  # in_progress|submitted
    started_at: Mapped[float] = mapped_column(Float, nullable=False)
    submitted_at: Mapped[float | None] = mapped_column(Float, nullable=True)
    submit_trigger: Mapped[str | None] = mapped_column(
        String(16), nullable=True
    )  # manual|deadline
    score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # One attempt per taker per assessment.
    __table_args__ = (UniqueConstraint("assessment_id", "taker_id"),)


class AnswerRow(Base):
    __tablename__ = "answers"

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attempts.id"), primary_key=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_answer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    marks_awarded: Mapped[float | None] = mapped_column(Float, nullable=True)
    time_spent: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class GroupMembershipRow(Base):
    __tablename__ = "group_memberships"

    group_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    taker_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, default="student"
    )  # student|instructor
