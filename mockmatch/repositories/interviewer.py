from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.repository.base import BaseRepository
from mockmatch.core.result import DatabaseError, Result
from mockmatch.domain.models import Interviewer, Profile


class InterviewerRepository(BaseRepository[Interviewer]):
    def __init__(self, session: AsyncSession):
        super().__init__(Interviewer, session)

    async def list_eligible(
        self, *, exclude_id: Optional[str] = None
    ) -> Result[Sequence[Interviewer], DatabaseError]:
        stmt = select(Interviewer).where(Interviewer.is_eligible.is_(True)).order_by(Interviewer.created_at)
        if exclude_id:
            stmt = stmt.where(Interviewer.id != exclude_id)
        return await self._scalars(stmt, "list_eligible")


class ProfileRepository(BaseRepository[Profile]):
    def __init__(self, session: AsyncSession):
        super().__init__(Profile, session)
