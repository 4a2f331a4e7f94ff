from __future__ import annotations

from typing import Protocol
from uuid import UUID

from assessment_engine.models.assessment import Assessment


class AssessmentRepo(Protocol):
    async def get(self, assessment_id: UUID) -> Assessment | None: ...
    async def add(self, assessment: Assessment) -> None: ...
    async def update(self, assessment: Assessment) -> None: ...
    async def list_by_owner(self, owner_id: UUID) -> list[Assessment]: ...


class InMemoryAssessmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Assessment] = {}

    async def get(self, assessment_id: UUID) -> Assessment | None:
        return self._by_id.get(assessment_id)

    async def add(self, assessment: Assessment) -> None:
        if assessment.id in self._by_id:
            raise ValueError("assessment already exists")
        self._by_id[assessment.id] = assessment

    async def update(self, assessment: Assessment) -> None:
        if assessment.id not in self._by_id:
            raise KeyError(assessment.id)
        self._by_id[assessment.id] = assessment

    async def list_by_owner(self, owner_id: UUID) -> list[Assessment]:
        return [a for a in self._by_id.values() if a.owner_id == owner_id]
