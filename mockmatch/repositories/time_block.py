"""Interviewer time block repository."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.repository.base import BaseRepository
from mockmatch.core.result import DatabaseError, Failure, NotFoundError, Result, Success
from mockmatch.core.time_utils import normalize_to_utc, utcnow
from mockmatch.domain.models import BlockReason, InterviewerTimeBlock


def _live(now: datetime):
    return or_(
        InterviewerTimeBlock.is_temporary.is_(False),
        InterviewerTimeBlock.expires_at > now,
    )


def _temporary_reservation():
    return and_(
        InterviewerTimeBlock.is_temporary.is_(True),
        InterviewerTimeBlock.block_reason == BlockReason.TEMPORARY_RESERVATION,
    )


class TimeBlockRepository(BaseRepository[InterviewerTimeBlock]):
    """
    Blocked ranges per interviewer and date.

    Temporary holds past their expiry are treated as absent by every read
    here, whether or not the cleanup sweep has deleted them yet.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(InterviewerTimeBlock, session)

    async def list_between(
        self,
        interviewer_id: str,
        start: date,
        end: date,
        *,
        now: Optional[datetime] = None,
    ) -> Result[Sequence[InterviewerTimeBlock], DatabaseError]:
        stmt = (
            select(InterviewerTimeBlock)
            .where(
                InterviewerTimeBlock.interviewer_id == interviewer_id,
                InterviewerTimeBlock.blocked_date >= start,
                InterviewerTimeBlock.blocked_date <= end,
                _live(normalize_to_utc(now or utcnow())),
            )
            .order_by(InterviewerTimeBlock.blocked_date, InterviewerTimeBlock.start_time)
        )
        return await self._scalars(stmt, "list_between")

    async def list_for_date(
        self,
        interviewer_id: str,
        blocked_date: date,
        *,
        now: Optional[datetime] = None,
    ) -> Result[Sequence[InterviewerTimeBlock], DatabaseError]:
        return await self.list_between(interviewer_id, blocked_date, blocked_date, now=now)

    async def get_temporary(
        self, reservation_id: str
    ) -> Result[InterviewerTimeBlock, NotFoundError | DatabaseError]:
        stmt = select(InterviewerTimeBlock).where(
            InterviewerTimeBlock.id == reservation_id,
            _temporary_reservation(),
        )
        try:
            block = (await self.session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            return self._db_failure("get_temporary", e)
        if block is None:
            return Failure(
                NotFoundError(
                    entity_type=self.model_name,
                    entity_id=reservation_id,
                    message=f"Temporary reservation {reservation_id} not found or already converted",
                )
            )
        return Success(block)

    async def find_temporary_for_slot(
        self,
        interviewer_id: str,
        blocked_date: date,
        start_time: str,
        *,
        user_id: Optional[str] = None,
    ) -> Result[Sequence[InterviewerTimeBlock], DatabaseError]:
        stmt = select(InterviewerTimeBlock).where(
            InterviewerTimeBlock.interviewer_id == interviewer_id,
            InterviewerTimeBlock.blocked_date == blocked_date,
            InterviewerTimeBlock.start_time == start_time,
            _temporary_reservation(),
        )
        if user_id is not None:
            stmt = stmt.where(InterviewerTimeBlock.reserved_by_user_id == user_id)
        return await self._scalars(stmt, "find_temporary_for_slot")

    async def list_temporary_for_user(
        self,
        user_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> Result[Sequence[InterviewerTimeBlock], DatabaseError]:
        stmt = (
            select(InterviewerTimeBlock)
            .where(
                InterviewerTimeBlock.reserved_by_user_id == user_id,
                _temporary_reservation(),
                InterviewerTimeBlock.expires_at > normalize_to_utc(now or utcnow()),
            )
            .order_by(InterviewerTimeBlock.created_at.desc())
        )
        return await self._scalars(stmt, "list_temporary_for_user")

    async def delete_expired_temporary(self, now: Optional[datetime] = None) -> Result[int, DatabaseError]:
        cutoff = normalize_to_utc(now or utcnow())
        expired = select(InterviewerTimeBlock.id).where(
            InterviewerTimeBlock.is_temporary.is_(True),
            InterviewerTimeBlock.expires_at <= cutoff,
        )
        try:
            ids = list((await self.session.execute(expired)).scalars().all())
            if ids:
                # expires_at loads back naive from SQLite; match rows in SQL, delete by key
                await self.session.execute(delete(InterviewerTimeBlock).where(InterviewerTimeBlock.id.in_(ids)))
                await self.session.flush()
        except SQLAlchemyError as e:
            return self._db_failure("delete_expired_temporary", e)
        return Success(len(ids))
