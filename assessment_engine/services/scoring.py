"""Grading: pure functions from (question, answer text) to marks.

Nothing in here raises for malformed answer text.  A frozen attempt must
always be scorable, so anything that cannot be read as an answer of the
right shape is simply wrong.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation, Overflow, localcontext

from assessment_engine.core.metrics import GRADING_DURATION
from assessment_engine.models.assessment import Assessment
from assessment_engine.models.attempt import Answer, Attempt
from assessment_engine.models.question import (
    LabelSet,
    NumericValue,
    Question,
    SingleLabel,
    parse_label_set,
    parse_number,
)

_EXACT = Decimal(0)


@dataclass(frozen=True, slots=True)
class GradeResult:
    is_correct: bool
    marks_awarded: float


def grade(
    question: Question, answer_text: str, *, tolerance: Decimal = _EXACT
) -> GradeResult:
    """Grade one answer.

    SINGLE_CHOICE is an exact, case-sensitive label match.  MULTI_CHOICE
    needs the submitted label set to equal the correct set, with no partial
    credit.  NUMERIC compares Decimal values, so "3" and "3.00" are the same
    answer; a positive tolerance widens that to |given - expected| <= tolerance.
    """
    if answer_text == "":
        return GradeResult(False, 0)

    match question.correct_answer:
        case SingleLabel(label=label):
            correct = answer_text == label
        case LabelSet(labels=labels):
            submitted = parse_label_set(answer_text)
            correct = bool(submitted) and submitted == labels
        case NumericValue(value=expected):
            given = parse_number(answer_text)
            correct = given is not None and _numbers_match(given, expected, tolerance)

    return GradeResult(correct, question.marks if correct else 0)


def _numbers_match(given: Decimal, expected: Decimal, tolerance: Decimal) -> bool:
    if not tolerance:
        return given == expected
    # Exponents far outside the context range overflow on subtraction;
    # untrapped, the difference becomes Infinity and the answer is wrong.
    with localcontext() as ctx:
        ctx.traps[Overflow] = False
        ctx.traps[InvalidOperation] = False
        difference = abs(given - expected)
    return difference.is_finite() and difference <= tolerance


def grade_attempt(
    attempt: Attempt, assessment: Assessment, *, tolerance: Decimal = _EXACT
) -> Attempt:
    """Grade every answer in question order and total the score.

    Re-grading an already graded attempt reproduces the same values.
    """
    by_question = {a.question_id: a for a in attempt.answers}
    graded: list[Answer] = []
    score: float = 0

    with GRADING_DURATION.time():
        for question in assessment.questions:
            answer = by_question.get(question.id) or Answer(question_id=question.id)
            result = grade(question, answer.selected_answer, tolerance=tolerance)
            graded.append(
                replace(
                    answer,
                    is_correct=result.is_correct,
                    marks_awarded=result.marks_awarded,
                )
            )
            score += result.marks_awarded

    return replace(attempt, answers=tuple(graded), score=score)
