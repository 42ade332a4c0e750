from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.repository.base import BaseRepository
from mockmatch.core.result import DatabaseError, Failure, NotFoundError, Result, Success
from mockmatch.domain.models import Coupon, CouponStatus


class CouponRepository(BaseRepository[Coupon]):
    def __init__(self, session: AsyncSession):
        super().__init__(Coupon, session)

    async def get_by_code(self, code: str) -> Result[Coupon, NotFoundError | DatabaseError]:
        normalized = code.strip().upper()
        stmt = select(Coupon).where(func.upper(Coupon.code) == normalized)
        try:
            coupon = (await self.session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            return self._db_failure("get_by_code", e)
        if coupon is None:
            return Failure(NotFoundError(entity_type="Coupon", entity_id=normalized))
        return Success(coupon)

    async def list_visible_active(self, today: date) -> Result[Sequence[Coupon], DatabaseError]:
        stmt = (
            select(Coupon)
            .where(
                Coupon.status == CouponStatus.ACTIVE,
                Coupon.is_visible.is_(True),
                or_(Coupon.expiring_on.is_(None), Coupon.expiring_on >= today),
            )
            .order_by(Coupon.created_at.desc())
        )
        return await self._scalars(stmt, "list_visible_active")
