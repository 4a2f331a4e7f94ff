from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest

from assessment_engine.core.config import Settings
from assessment_engine.core.context import attempt_id_var
from assessment_engine.models.access import AccessPolicy, Public
from assessment_engine.models.assessment import Assessment
from assessment_engine.models.question import Question, QuestionType
from assessment_engine.wiring import Services, build_services

# Ensure repo root is on sys.path so `import assessment_engine` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

T0 = 1_700_000_000.0

TEST_SETTINGS = Settings(
    app_env="test",
    log_level="info",
    log_json=False,
    database_url=None,
    redis_url=None,
    numeric_tolerance=Decimal(0),
    recheck_access_on_submit=True,
    deadline_poll_interval=0.01,
)


class FakeClock:
    """Manually advanced wall clock (POSIX seconds)."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_attempt_context() -> None:
    """No attempt id leaks from one test into the next."""
    attempt_id_var.set("-")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def services(clock: FakeClock) -> Services:
    """In-memory repositories and asyncio deadlines on a fake clock."""
    return build_services(None, None, clock=clock, settings=TEST_SETTINGS)


# ---------------------------------------------------------------------------
# Assessment helpers
# ---------------------------------------------------------------------------


def sample_questions() -> list[Question]:
    """Q1 single choice worth 2 (answer B); Q2 numeric worth 3 (answer 42)."""
    return [
        Question.new(
            text="Which option is the second one?",
            type=QuestionType.SINGLE_CHOICE,
            options=("first", "second", "third", "fourth"),
            correct_answer="B",
            marks=2,
            order=1,
        ),
        Question.new(
            text="What is $6 \\times 7$?",
            type=QuestionType.NUMERIC,
            correct_answer="42",
            marks=3,
            order=2,
        ),
    ]


async def publish_assessment(
    services: Services,
    *,
    policy: AccessPolicy | None = None,
    duration_seconds: int = 60,
    questions: list[Question] | None = None,
    owner_id: UUID | None = None,
) -> Assessment:
    """Create and publish an assessment through the authoring service."""
    assessment = await services.authoring.create(
        owner_id=owner_id or uuid4(),
        title="Sample quiz",
        questions=questions if questions is not None else sample_questions(),
        duration_seconds=duration_seconds,
        access_policy=policy or Public(),
    )
    return await services.authoring.publish(assessment.id)
