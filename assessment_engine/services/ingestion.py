"""Question ingestion: three input shapes, one canonical Question.

  MANUAL          author-entered questions, already near-canonical;
                  validated through the ManualQuestionIn model.
  SPREADSHEET     rows of cells laid out as
                  [question, A, B, C, D, correct label, explanation?].
  EXTRACTED_TEXT  text pulled out of a document by an external extractor,
                  segmented into one block per question.

A bad entry never sinks the batch.  Each one becomes a NormalizationError
in the result, next to the questions that did normalize, and the caller
decides whether partial results are acceptable.  Pass strict=True to raise
the first error instead.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from assessment_engine.core.errors import NormalizationError
from assessment_engine.core.metrics import INGESTION_ENTRIES
from assessment_engine.models.question import (
    LABELS,
    LabelSet,
    Question,
    QuestionType,
    SingleLabel,
    choice_problem,
    parse_label_set,
    parse_number,
)

logger = logging.getLogger(__name__)

CHOICE_WIDTH = 4  # spreadsheet and extracted text always carry A-D
_CHOICE_LABELS = LABELS[:CHOICE_WIDTH]

_HEADER_CELL = re.compile(r"question|option|answer", re.IGNORECASE)
_QUESTION_MARKER = re.compile(
    r"^[ \t]*(?:Question|Q)[ \t]*\d+[ \t]*[.):]?[ \t]*", re.IGNORECASE | re.MULTILINE
)
_OPTION_LINE = re.compile(r"^([A-D])[.)]\s*(.*)$")
_ANSWER_LINE = re.compile(r"^(?:Answer|Correct|Ans)[:\s]+([A-D])", re.IGNORECASE)
_EXPLANATION_LINE = re.compile(r"^(?:Explanation|Explain|Reason)[:\s]", re.IGNORECASE)
_EXPLANATION_PREFIX = re.compile(r"^(?:Explanation|Explain|Reason)[:\s]+", re.IGNORECASE)
_OPTION_PREFIX = re.compile(r"^[A-D][.)]\s*")
_BLANK_LINE_RUN = re.compile(r"(?:\n\s*){2,}")

_FALLBACK_MIN_BLOCK_CHARS = 20
_FALLBACK_MAX_BLOCKS = 20

# Authoring forms also name the three types MCQ/MSQ/NAT.
_TYPE_ALIASES = {
    "mcq": QuestionType.SINGLE_CHOICE,
    "msq": QuestionType.MULTI_CHOICE,
    "nat": QuestionType.NUMERIC,
}


class IngestionSource(StrEnum):
    MANUAL = "manual"
    SPREADSHEET = "spreadsheet"
    EXTRACTED_TEXT = "extracted_text"


@dataclass(frozen=True, slots=True)
class NormalizationResult:
    source: IngestionSource
    questions: tuple[Question, ...]
    errors: tuple[NormalizationError, ...] = ()
    skipped: int = 0
    low_confidence: bool = False  # produced by the lossy text fallback

    @property
    def is_complete(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class ExtractedDocument:
    """Text handed over by a document extractor.

    blocks holds one string per question, already split on the question
    marker; text is the full extracted text, used by the fallback when no
    block parses.
    """

    blocks: tuple[str, ...]
    text: str = ""

    @staticmethod
    def from_text(text: str) -> ExtractedDocument:
        return ExtractedDocument(blocks=segment_blocks(text), text=text)


def segment_blocks(text: str) -> tuple[str, ...]:
    """Split text on "Q1." / "Question 2)" markers at line start.

    Anything before the first marker is dropped.
    """
    parts = _QUESTION_MARKER.split(text)
    return tuple(part.strip() for part in parts[1:] if part.strip())


class ManualQuestionIn(BaseModel):
    # camelCase aliases accept payloads posted by browser authoring forms
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(alias="questionText")
    type: QuestionType = Field(alias="questionType")
    options: list[str] = []
    correct_answer: str = Field(alias="correctAnswer")
    marks: float = 1
    explanation: str | None = None
    order: int | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _resolve_type_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _TYPE_ALIASES.get(value.strip().lower(), value.strip().lower())
        return value

    @field_validator("text")
    @classmethod
    def _text_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question text is required")
        return value

    @field_validator("marks")
    @classmethod
    def _marks_positive(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("marks must be positive")
        return value

    @field_validator("order")
    @classmethod
    def _order_positive(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("order must be a positive integer")
        return value

    @model_validator(mode="after")
    def _check_answer_against_options(self) -> ManualQuestionIn:
        self.options = [option.strip() for option in self.options]
        answer = self.correct_answer.strip()
        if not answer:
            raise ValueError("correct answer is required")

        if self.type == QuestionType.NUMERIC:
            if self.options:
                raise ValueError("numeric questions take no options")
            if parse_number(answer) is None:
                raise ValueError(f"numeric answer is not a number: {answer!r}")
            self.correct_answer = answer
            return self

        if any(not option for option in self.options):
            raise ValueError("options must not be empty")
        problem = choice_problem(self.options, parse_label_set(answer.upper()))
        if problem:
            raise ValueError(problem)
        if self.type == QuestionType.SINGLE_CHOICE:
            if len(parse_label_set(answer)) != 1:
                raise ValueError("single choice questions take exactly one label")
            self.correct_answer = answer.upper()
        else:
            self.correct_answer = LabelSet(parse_label_set(answer.upper())).encode()
        return self


def normalize(
    source: IngestionSource, raw: Any, *, strict: bool = False
) -> NormalizationResult:
    """Convert raw author input into canonical questions.

    raw is, per source:
      MANUAL          iterable of mappings or ManualQuestionIn
      SPREADSHEET     iterable of row sequences
      EXTRACTED_TEXT  ExtractedDocument, or plain text to be segmented
    """
    collector = _Collector(source=IngestionSource(source), strict=strict)

    if collector.source == IngestionSource.MANUAL:
        _normalize_manual(raw, collector)
    elif collector.source == IngestionSource.SPREADSHEET:
        _normalize_spreadsheet(raw, collector)
    else:
        document = raw if isinstance(raw, ExtractedDocument) else ExtractedDocument.from_text(raw)
        _normalize_extracted(document, collector)

    result = collector.result()
    logger.info(
        "Normalized %d question(s) from %s (%d skipped, %d rejected)",
        len(result.questions),
        result.source,
        result.skipped,
        len(result.errors),
    )
    if result.low_confidence:
        logger.warning(
            "Questions from %s came from the blank-line fallback; review before use",
            result.source,
        )
    return result


# ---------------------------------------------------------------------------
# Manual entry
# ---------------------------------------------------------------------------


def _normalize_manual(
    items: Iterable[Mapping[str, Any] | ManualQuestionIn], collector: _Collector
) -> None:
    seen_orders: set[int] = set()
    for index, item in enumerate(items):
        try:
            entry = (
                item
                if isinstance(item, ManualQuestionIn)
                else ManualQuestionIn.model_validate(item)
            )
        except ValidationError as exc:
            collector.reject(index, _validation_reason(exc))
            continue

        order = entry.order if entry.order is not None else index + 1
        if order in seen_orders:
            collector.reject(index, f"duplicate question order {order}")
            continue
        seen_orders.add(order)

        collector.accept(
            Question.new(
                text=entry.text,
                type=entry.type,
                options=tuple(entry.options),
                correct_answer=entry.correct_answer,
                marks=entry.marks,
                order=order,
                explanation=(entry.explanation or "").strip() or None,
            ),
            keep_order=True,
        )


def _validation_reason(exc: ValidationError) -> str:
    first = exc.errors()[0]
    message = str(first.get("msg", "invalid question"))
    message = message.removeprefix("Value error, ")
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {message}" if location else message


# ---------------------------------------------------------------------------
# Spreadsheet rows
# ---------------------------------------------------------------------------


def _normalize_spreadsheet(
    rows: Iterable[Sequence[Any] | None], collector: _Collector
) -> None:
    rows = list(rows)
    start = 1 if rows and _is_header(rows[0]) else 0

    for index in range(start, len(rows)):
        row = rows[index]
        if row is None or len(row) < 6:
            collector.skip()
            continue

        cells = [_cell(value) for value in row]
        text, option_a, option_b, option_c, option_d, label = cells[:6]
        if not (text or option_a or option_b):
            collector.skip()
            continue
        if not text:
            collector.reject(index, "question text is blank")
            continue

        label = label.upper()
        if label not in _CHOICE_LABELS:
            label = "A"
        options = (option_a, option_b, option_c, option_d)
        problem = choice_problem(options, frozenset({label}))
        if problem:
            collector.reject(index, problem)
            continue

        explanation = cells[6] if len(cells) > 6 and cells[6] else None
        collector.accept(_single_choice(text, options, label, explanation))


def _is_header(row: Sequence[Any] | None) -> bool:
    if not row:
        return False
    return any(isinstance(cell, str) and _HEADER_CELL.search(cell) for cell in row)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


# ---------------------------------------------------------------------------
# Extracted document text
# ---------------------------------------------------------------------------


def _normalize_extracted(document: ExtractedDocument, collector: _Collector) -> None:
    for index, block in enumerate(document.blocks):
        parsed = _parse_block(block)
        if isinstance(parsed, str):
            collector.reject(index, parsed)
        else:
            collector.accept(parsed)

    if not collector.questions and document.text:
        _fallback_blocks(document.text, collector)


def _parse_block(block: str) -> Question | str:
    """Parse one question block, or return the reason it can't be."""
    question_lines: list[str] = []
    options: list[str] = []
    explanation_lines: list[str] = []
    label = ""
    in_explanation = False

    for line in (raw.strip() for raw in block.splitlines()):
        if not line:
            continue
        if in_explanation:
            explanation_lines.append(line)
            continue

        option = _OPTION_LINE.match(line)
        if option:
            options.append(option.group(2).strip())
            continue
        answer = _ANSWER_LINE.match(line)
        if answer:
            label = answer.group(1).upper()
            continue
        if _EXPLANATION_LINE.match(line):
            in_explanation = True
            first = _EXPLANATION_PREFIX.sub("", line, count=1).strip()
            if first:
                explanation_lines.append(first)
            continue
        if not options:
            question_lines.append(line)

    text = " ".join(question_lines).strip()
    if not text:
        return "block has no question text"
    if len(options) < 2:
        return f"block has {len(options)} option(s), need at least 2"

    padded = _pad(options)
    label = label or "A"
    problem = choice_problem(padded, frozenset({label}))
    if problem:
        return problem
    explanation = " ".join(explanation_lines).strip() or None
    return _single_choice(text, padded, label, explanation)


def _fallback_blocks(text: str, collector: _Collector) -> None:
    """Lossy recovery: one question per blank-line separated paragraph.

    First line is the question, the next (up to four) lines the options,
    and the answer is assumed to be A.
    """
    blocks = [
        block
        for block in _BLANK_LINE_RUN.split(text)
        if len(block.strip()) > _FALLBACK_MIN_BLOCK_CHARS
    ]
    for index, block in enumerate(blocks[:_FALLBACK_MAX_BLOCKS]):
        lines = [line.strip() for line in block.splitlines() if line.strip()]
        if len(lines) < 3:
            collector.skip()
            continue
        options = _pad(
            _OPTION_PREFIX.sub("", line, count=1).strip()
            for line in lines[1 : 1 + CHOICE_WIDTH]
        )
        problem = choice_problem(options, frozenset({"A"}))
        if problem:
            collector.reject(index, problem)
            continue
        collector.accept(_single_choice(lines[0], options, "A", None))

    if collector.questions:
        collector.low_confidence = True


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


def _pad(options: Iterable[str]) -> tuple[str, ...]:
    """Positional A-D options; missing trailing ones become empty placeholders."""
    options = list(options)[:CHOICE_WIDTH]
    return tuple(options + [""] * (CHOICE_WIDTH - len(options)))


def _single_choice(
    text: str, options: Sequence[str], label: str, explanation: str | None
) -> Question:
    # order is reassigned by the collector
    return Question.new(
        text=text,
        type=QuestionType.SINGLE_CHOICE,
        options=tuple(options),
        correct_answer=SingleLabel(label),
        marks=1,
        order=1,
        explanation=explanation,
    )


@dataclass
class _Collector:
    source: IngestionSource
    strict: bool
    questions: list[Question] = field(default_factory=list)
    errors: list[NormalizationError] = field(default_factory=list)
    skipped: int = 0
    low_confidence: bool = False

    def accept(self, question: Question, *, keep_order: bool = False) -> None:
        if not keep_order:
            question = _with_order(question, len(self.questions) + 1)
        self.questions.append(question)
        INGESTION_ENTRIES.labels(source=self.source.value, result="accepted").inc()

    def skip(self) -> None:
        self.skipped += 1
        INGESTION_ENTRIES.labels(source=self.source.value, result="skipped").inc()

    def reject(self, index: int, reason: str) -> None:
        error = NormalizationError(reason, index=index)
        INGESTION_ENTRIES.labels(source=self.source.value, result="rejected").inc()
        if self.strict:
            raise error
        logger.warning("Rejected %s entry %d: %s", self.source, index, reason)
        self.errors.append(error)

    def result(self) -> NormalizationResult:
        return NormalizationResult(
            source=self.source,
            questions=tuple(sorted(self.questions, key=lambda q: q.order)),
            errors=tuple(self.errors),
            skipped=self.skipped,
            low_confidence=self.low_confidence,
        )


def _with_order(question: Question, order: int) -> Question:
    return replace(question, order=order)

