from __future__ import annotations

from typing import Protocol
from uuid import UUID

from assessment_engine.models.membership import GroupMembership


class MembershipRepo(Protocol):
    async def is_member(self, group_id: UUID, taker_id: UUID) -> bool: ...
    async def add(self, membership: GroupMembership) -> None: ...
    async def remove(self, group_id: UUID, taker_id: UUID) -> bool: ...
    async def list_by_group(self, group_id: UUID) -> list[GroupMembership]: ...


class InMemoryMembershipRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, UUID], GroupMembership] = {}

    async def is_member(self, group_id: UUID, taker_id: UUID) -> bool:
        return (group_id, taker_id) in self._store

    async def add(self, membership: GroupMembership) -> None:
        key = (membership.group_id, membership.taker_id)
        if key in self._store:
            raise ValueError("membership already exists")
        self._store[key] = membership

    async def remove(self, group_id: UUID, taker_id: UUID) -> bool:
        return self._store.pop((group_id, taker_id), None) is not None

    async def list_by_group(self, group_id: UUID) -> list[GroupMembership]:
        return [m for m in self._store.values() if m.group_id == group_id]
