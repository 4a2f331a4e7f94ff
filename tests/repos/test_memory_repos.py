from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from assessment_engine.models.access import Public
from assessment_engine.models.assessment import Assessment, AssessmentStatus
from assessment_engine.models.attempt import Answer, Attempt, AttemptStatus
from assessment_engine.models.membership import GroupMembership
from assessment_engine.repos.assessment_repo import InMemoryAssessmentRepo
from assessment_engine.repos.attempt_repo import InMemoryAttemptRepo
from assessment_engine.repos.membership_repo import InMemoryMembershipRepo
from tests.conftest import T0, sample_questions


def _assessment(owner_id=None) -> Assessment:
    return Assessment.new(
        owner_id=owner_id or uuid4(),
        title="t",
        questions=sample_questions(),
        duration_seconds=60,
        access_policy=Public(),
    )


def _submitted(attempt: Attempt) -> Attempt:
    return replace(
        attempt, status=AttemptStatus.SUBMITTED, submitted_at=T0 + 1, score=0
    )


# ---- assessments ----


def test_assessment_repo_add_get_update() -> None:
    repo = InMemoryAssessmentRepo()
    owner = uuid4()
    assessment = _assessment(owner)

    async def scenario():
        await repo.add(assessment)
        await repo.add(_assessment())
        await repo.update(replace(assessment, status=AssessmentStatus.ACTIVE))
        return await repo.get(assessment.id), await repo.list_by_owner(owner)

    stored, owned = asyncio.run(scenario())
    assert stored.status == AssessmentStatus.ACTIVE
    assert [a.id for a in owned] == [assessment.id]


def test_assessment_repo_rejects_duplicate_and_missing() -> None:
    repo = InMemoryAssessmentRepo()
    assessment = _assessment()
    asyncio.run(repo.add(assessment))
    with pytest.raises(ValueError):
        asyncio.run(repo.add(assessment))
    with pytest.raises(KeyError):
        asyncio.run(repo.update(_assessment()))
    assert asyncio.run(repo.get(uuid4())) is None


# ---- attempts ----


def test_create_if_absent_returns_existing_for_pair() -> None:
    repo = InMemoryAttemptRepo()
    assessment = _assessment()
    taker = uuid4()
    first = Attempt.new(assessment=assessment, taker_id=taker, started_at=T0)
    second = Attempt.new(assessment=assessment, taker_id=taker, started_at=T0 + 5)

    async def scenario():
        a = await repo.create_if_absent(first)
        b = await repo.create_if_absent(second)
        return a, b, await repo.get(second.id), await repo.get_for_pair(assessment.id, taker)

    a, b, missing, by_pair = asyncio.run(scenario())
    assert a is first
    assert b is first
    assert missing is None
    assert by_pair is first


def test_save_answer_replaces_one_answer() -> None:
    repo = InMemoryAttemptRepo()
    assessment = _assessment()
    attempt = Attempt.new(assessment=assessment, taker_id=uuid4(), started_at=T0)
    q1 = assessment.questions[0]

    async def scenario():
        await repo.create_if_absent(attempt)
        return await repo.save_answer(attempt.id, Answer(question_id=q1.id, selected_answer="C"))

    updated = asyncio.run(scenario())
    assert updated.answer_for(q1.id).selected_answer == "C"
    assert updated.answers[1].selected_answer == ""


def test_save_answer_refuses_unknown_question_and_submitted_attempt() -> None:
    repo = InMemoryAttemptRepo()
    assessment = _assessment()
    attempt = Attempt.new(assessment=assessment, taker_id=uuid4(), started_at=T0)
    q1 = assessment.questions[0]

    async def scenario():
        await repo.create_if_absent(attempt)
        unknown = await repo.save_answer(attempt.id, Answer(question_id=uuid4()))
        await repo.complete_submission(_submitted(attempt))
        late = await repo.save_answer(attempt.id, Answer(question_id=q1.id, selected_answer="A"))
        missing = await repo.save_answer(uuid4(), Answer(question_id=q1.id))
        return unknown, late, missing

    assert asyncio.run(scenario()) == (None, None, None)


def test_complete_submission_is_compare_and_set() -> None:
    repo = InMemoryAttemptRepo()
    assessment = _assessment()
    attempt = Attempt.new(assessment=assessment, taker_id=uuid4(), started_at=T0)

    async def scenario():
        await repo.create_if_absent(attempt)
        first = await repo.complete_submission(_submitted(attempt))
        second = await repo.complete_submission(replace(_submitted(attempt), score=99))
        return first, second, await repo.get(attempt.id)

    first, second, stored = asyncio.run(scenario())
    assert (first, second) == (True, False)
    assert stored.score == 0


def test_attempt_listings() -> None:
    repo = InMemoryAttemptRepo()
    assessment = _assessment()
    taker = uuid4()
    mine = Attempt.new(assessment=assessment, taker_id=taker, started_at=T0)
    other = Attempt.new(assessment=assessment, taker_id=uuid4(), started_at=T0)
    elsewhere = Attempt.new(assessment=_assessment(), taker_id=taker, started_at=T0)

    async def scenario():
        for attempt in (mine, other, elsewhere):
            await repo.create_if_absent(attempt)
        await repo.complete_submission(_submitted(mine))
        return (
            await repo.list_in_progress(),
            await repo.list_submitted_by_taker(taker),
            await repo.list_by_assessment(assessment.id),
        )

    in_progress, submitted, by_assessment = asyncio.run(scenario())
    assert {a.id for a in in_progress} == {other.id, elsewhere.id}
    assert [a.id for a in submitted] == [mine.id]
    assert {a.id for a in by_assessment} == {mine.id, other.id}


# ---- memberships ----


def test_membership_repo() -> None:
    repo = InMemoryMembershipRepo()
    group, taker = uuid4(), uuid4()

    async def scenario():
        await repo.add(GroupMembership(group_id=group, taker_id=taker))
        await repo.add(GroupMembership(group_id=uuid4(), taker_id=taker))
        member = await repo.is_member(group, taker)
        listed = await repo.list_by_group(group)
        removed = await repo.remove(group, taker)
        removed_again = await repo.remove(group, taker)
        return member, listed, removed, removed_again, await repo.is_member(group, taker)

    member, listed, removed, removed_again, still_member = asyncio.run(scenario())
    assert member is True
    assert [m.taker_id for m in listed] == [taker]
    assert listed[0].role == "student"
    assert (removed, removed_again, still_member) == (True, False, False)


def test_membership_repo_rejects_duplicate() -> None:
    repo = InMemoryMembershipRepo()
    membership = GroupMembership(group_id=uuid4(), taker_id=uuid4())
    asyncio.run(repo.add(membership))
    with pytest.raises(ValueError):
        asyncio.run(repo.add(membership))
