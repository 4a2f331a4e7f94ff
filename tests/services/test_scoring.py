from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from assessment_engine.models.access import Public
from assessment_engine.models.assessment import Assessment
from assessment_engine.models.attempt import Answer, Attempt
from assessment_engine.models.question import Question, QuestionType
from assessment_engine.services.scoring import GradeResult, grade, grade_attempt
from tests.conftest import T0, sample_questions


def _single(correct: str = "B", marks: float = 2) -> Question:
    return Question.new(
        text="q",
        type=QuestionType.SINGLE_CHOICE,
        options=("w", "x", "y", "z"),
        correct_answer=correct,
        marks=marks,
        order=1,
    )


def _multi(correct: str = "A,B", marks: float = 4) -> Question:
    return Question.new(
        text="q",
        type=QuestionType.MULTI_CHOICE,
        options=("w", "x", "y", "z"),
        correct_answer=correct,
        marks=marks,
        order=1,
    )


def _numeric(correct: str = "3.0", marks: float = 3) -> Question:
    return Question.new(
        text="q", type=QuestionType.NUMERIC, correct_answer=correct, marks=marks, order=1
    )


# ---- single choice ----


def test_single_choice_exact_label() -> None:
    assert grade(_single(), "B") == GradeResult(True, 2)
    assert grade(_single(), "A") == GradeResult(False, 0)


def test_single_choice_is_case_sensitive() -> None:
    assert grade(_single(), "b") == GradeResult(False, 0)


# ---- multi choice ----


def test_multi_choice_needs_exact_set() -> None:
    assert grade(_multi(), "B,A") == GradeResult(True, 4)
    assert grade(_multi(), " A , B ,") == GradeResult(True, 4)


def test_multi_choice_superset_scores_zero() -> None:
    assert grade(_multi(), "A,B,C") == GradeResult(False, 0)


def test_multi_choice_subset_scores_zero() -> None:
    assert grade(_multi(), "A") == GradeResult(False, 0)


def test_multi_choice_only_separators_is_wrong() -> None:
    assert grade(_multi(), " , ,") == GradeResult(False, 0)


# ---- numeric ----


@pytest.mark.parametrize("given", ["3", "3.0", "3.00", " 3 ", "3e0"])
def test_numeric_compares_values_not_text(given: str) -> None:
    assert grade(_numeric("3.0"), given).is_correct


@pytest.mark.parametrize("given", ["3.1", "three", "NaN", "Infinity", "3,0"])
def test_numeric_wrong_or_unparseable_is_incorrect(given: str) -> None:
    assert grade(_numeric("3.0"), given) == GradeResult(False, 0)


def test_numeric_tolerance_widens_match() -> None:
    q = _numeric("3.14")
    assert not grade(q, "3.1416").is_correct
    assert grade(q, "3.1416", tolerance=Decimal("0.01")).is_correct
    assert not grade(q, "3.2", tolerance=Decimal("0.01")).is_correct


@pytest.mark.parametrize("given", ["1e1000000", "-1e1000000", "1e-1000000"])
def test_numeric_out_of_range_answer_is_wrong_not_an_error(given: str) -> None:
    assert grade(_numeric("42"), given) == GradeResult(False, 0)
    assert grade(_numeric("42"), given, tolerance=Decimal("0.5")) == GradeResult(False, 0)


def test_numeric_out_of_range_correct_answer_still_grades() -> None:
    q = _numeric("1e1000000")
    assert grade(q, "1e1000000").is_correct
    assert grade(q, "1E+1000000", tolerance=Decimal("0.01")).is_correct
    assert not grade(q, "42", tolerance=Decimal("0.01")).is_correct


# ---- unanswered ----


@pytest.mark.parametrize("question", [_single(), _multi(), _numeric()])
def test_unanswered_is_wrong_for_every_type(question: Question) -> None:
    assert grade(question, "") == GradeResult(False, 0)


def test_grade_is_pure() -> None:
    q = _single()
    assert grade(q, "B") == grade(q, "B")


# ---- whole attempt ----


def _attempt_for(assessment: Assessment, answers: dict[int, str]) -> Attempt:
    attempt = Attempt.new(assessment=assessment, taker_id=uuid4(), started_at=T0)
    for order, text in answers.items():
        q = next(q for q in assessment.questions if q.order == order)
        attempt = attempt.with_answer(Answer(question_id=q.id, selected_answer=text))
    return attempt


def _assessment() -> Assessment:
    return Assessment.new(
        owner_id=uuid4(),
        title="t",
        questions=sample_questions(),
        duration_seconds=60,
        access_policy=Public(),
    )


def test_grade_attempt_sums_marks_in_question_order() -> None:
    assessment = _assessment()
    graded = grade_attempt(_attempt_for(assessment, {1: "B", 2: "42.0"}), assessment)
    assert [a.is_correct for a in graded.answers] == [True, True]
    assert [a.marks_awarded for a in graded.answers] == [2, 3]
    assert graded.score == 5


def test_grade_attempt_scores_unanswered_as_zero() -> None:
    assessment = _assessment()
    graded = grade_attempt(_attempt_for(assessment, {1: "A"}), assessment)
    assert [a.is_correct for a in graded.answers] == [False, False]
    assert graded.score == 0


def test_grade_attempt_is_idempotent() -> None:
    assessment = _assessment()
    once = grade_attempt(_attempt_for(assessment, {2: "42"}), assessment)
    assert grade_attempt(once, assessment) == once


def test_grade_attempt_observes_duration() -> None:
    before = REGISTRY.get_sample_value("grading_duration_seconds_count") or 0.0
    assessment = _assessment()
    grade_attempt(_attempt_for(assessment, {}), assessment)
    after = REGISTRY.get_sample_value("grading_duration_seconds_count") or 0.0
    assert after - before == 1
