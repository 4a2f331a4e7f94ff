"""PostgreSQL implementation of MembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_engine.db.engine import session_scope
from assessment_engine.db.tables import GroupMembershipRow
from assessment_engine.models.membership import GroupMembership


class PgMembershipRepo:
    """Satisfies the MembershipRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def is_member(self, group_id: UUID, taker_id: UUID) -> bool:
        async with session_scope(self._session_factory) as session:
            row = await session.get(GroupMembershipRow, (group_id, taker_id))
            return row is not None

    async def add(self, membership: GroupMembership) -> None:
        async with session_scope(self._session_factory) as session:
            key = (membership.group_id, membership.taker_id)
            if await session.get(GroupMembershipRow, key) is not None:
                raise ValueError("membership already exists")
            session.add(
                GroupMembershipRow(
                    group_id=membership.group_id,
                    taker_id=membership.taker_id,
                    role=membership.role,
                )
            )

    async def remove(self, group_id: UUID, taker_id: UUID) -> bool:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(GroupMembershipRow)
                .where(GroupMembershipRow.group_id == group_id)
                .where(GroupMembershipRow.taker_id == taker_id)
            )
            return result.rowcount > 0

    async def list_by_group(self, group_id: UUID) -> list[GroupMembership]:
        async with session_scope(self._session_factory) as session:
            stmt = select(GroupMembershipRow).where(GroupMembershipRow.group_id == group_id)
            rows = (await session.execute(stmt)).scalars().all()
            return [
                GroupMembership(group_id=r.group_id, taker_id=r.taker_id, role=r.role)
                for r in rows
            ]
