from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from uuid import UUID, uuid4

LABELS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

# Plain decimal notation: sign, digits, optional fraction, optional exponent.
_NUMBER = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class QuestionType(StrEnum):
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    NUMERIC = "numeric"


def option_label(index: int) -> str:
    return LABELS[index]


@dataclass(frozen=True, slots=True)
class SingleLabel:
    label: str

    def encode(self) -> str:
        return self.label


@dataclass(frozen=True, slots=True)
class LabelSet:
    labels: frozenset[str]

    def encode(self) -> str:
        # Stored form is sorted and comma-joined: "A,C,D"
        return ",".join(sorted(self.labels))


@dataclass(frozen=True, slots=True)
class NumericValue:
    value: Decimal

    def encode(self) -> str:
        return str(self.value)


CorrectAnswer = SingleLabel | LabelSet | NumericValue


def parse_number(text: str) -> Decimal | None:
    """Parse decimal text; None for anything that isn't a finite number.

    Surrounding whitespace is ignored.  Digit separators ("1_000", "1,000")
    and the NaN/Infinity spellings Decimal would otherwise accept are not.
    """
    text = text.strip()
    if not _NUMBER.fullmatch(text):
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_label_set(text: str) -> frozenset[str]:
    items = (part.strip() for part in text.split(","))
    return frozenset(item for item in items if item)


def parse_correct_answer(type: QuestionType, text: str) -> CorrectAnswer:
    """Decode the textual storage form of a correct answer.

    Raises ValueError when the text cannot encode an answer of this type.
    """
    if type == QuestionType.SINGLE_CHOICE:
        label = text.strip()
        if len(label) != 1 or label not in LABELS:
            raise ValueError(f"not an option label: {text!r}")
        return SingleLabel(label)

    if type == QuestionType.MULTI_CHOICE:
        labels = parse_label_set(text)
        if not labels:
            raise ValueError("at least one option label is required")
        bad = sorted(label for label in labels if label not in LABELS or len(label) != 1)
        if bad:
            raise ValueError(f"not option labels: {', '.join(bad)}")
        return LabelSet(labels)

    value = parse_number(text)
    if value is None:
        raise ValueError(f"not a number: {text!r}")
    return NumericValue(value)


def referenced_labels(answer: CorrectAnswer) -> frozenset[str]:
    match answer:
        case SingleLabel(label=label):
            return frozenset({label})
        case LabelSet(labels=labels):
            return labels
        case NumericValue():
            return frozenset()


def choice_problem(options: Sequence[str], labels: frozenset[str]) -> str | None:
    """Check a choice question's options against its correct labels.

    Returns a reason string, or None when the options are usable.  Empty
    strings are positional placeholders: they keep their letter but cannot
    be the correct answer.
    """
    if len(options) > len(LABELS):
        return f"at most {len(LABELS)} options are supported"
    filled = [option for option in options if option]
    if len(filled) < 2:
        return "choice questions need at least two options"
    if len(set(filled)) != len(filled):
        return "options must be unique"
    available = {option_label(i) for i, option in enumerate(options) if option}
    missing = sorted(labels - available)
    if missing:
        return f"correct answer {','.join(missing)} does not match a filled option"
    return None


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    text: str
    type: QuestionType
    options: tuple[str, ...]
    correct_answer: CorrectAnswer
    marks: float
    order: int
    explanation: str | None = None

    @property
    def labels(self) -> tuple[str, ...]:
        """Labels of the non-empty options; padding placeholders get none."""
        return tuple(
            option_label(i) for i, option in enumerate(self.options) if option
        )

    @staticmethod
    def new(
        *,
        text: str,
        type: QuestionType,
        correct_answer: CorrectAnswer | str,
        order: int,
        options: tuple[str, ...] = (),
        marks: float = 1,
        explanation: str | None = None,
    ) -> Question:
        if isinstance(correct_answer, str):
            correct_answer = parse_correct_answer(type, correct_answer)
        return Question(
            id=uuid4(),
            text=text,
            type=type,
            options=tuple(options),
            correct_answer=correct_answer,
            marks=marks,
            order=order,
            explanation=explanation,
        )
