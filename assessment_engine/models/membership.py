from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class GroupMembership:
    group_id: UUID  # the class an assessment belongs to
    taker_id: UUID
    role: str = "student"  # student|instructor
