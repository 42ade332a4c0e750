"""
Generic async repository with Result-typed CRUD operations.

Expected data-access failures never escape as exceptions: every method
returns ``Success`` or ``Failure`` and logs what went wrong.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Sequence, Type, TypeVar

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.result import DatabaseError, Failure, NotFoundError, Result, Success
from mockmatch.domain.base import Base

logger = logging.getLogger(__name__)

T_Model = TypeVar("T_Model", bound=Base)


class BaseRepository(Generic[T_Model]):
    """
    CRUD operations shared by every table-backed repository.

    Example:
        class CouponRepository(BaseRepository[Coupon]):
            def __init__(self, session: AsyncSession):
                super().__init__(Coupon, session)
    """

    def __init__(self, model: Type[T_Model], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def model_name(self) -> str:
        return self.model.__name__

    def _db_failure(self, operation: str, exc: SQLAlchemyError) -> Failure[DatabaseError]:
        if isinstance(exc, IntegrityError):
            logger.warning("Integrity error in %s.%s(): %s", self.model_name, operation, exc.orig)
            message = f"Constraint violation: {exc.orig}"
        else:
            logger.error("Database error in %s.%s()", self.model_name, operation, exc_info=True)
            message = str(exc)
        return Failure(
            DatabaseError(
                operation=f"{self.model_name}.{operation}",
                message=message,
                original_exception=exc,
            )
        )

    async def get(self, id: str) -> Result[T_Model, NotFoundError | DatabaseError]:
        try:
            entity = await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            return self._db_failure("get", e)
        if entity is None:
            return Failure(NotFoundError(entity_type=self.model_name, entity_id=id))
        return Success(entity)

    async def _scalars(self, stmt: Any, operation: str) -> Result[Sequence[T_Model], DatabaseError]:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            return self._db_failure(operation, e)
        return Success(result.scalars().all())

    async def add(self, entity: T_Model) -> Result[T_Model, DatabaseError]:
        """Add and flush so generated defaults are populated; the caller commits."""
        try:
            self.session.add(entity)
            await self.session.flush()
            await self.session.refresh(entity)
        except SQLAlchemyError as e:
            await self.session.rollback()
            return self._db_failure("add", e)
        return Success(entity)

    async def save(self, entity: T_Model) -> Result[T_Model, DatabaseError]:
        """Flush pending changes to an entity already attached to the session."""
        try:
            await self.session.flush()
            await self.session.refresh(entity)
        except SQLAlchemyError as e:
            await self.session.rollback()
            return self._db_failure("save", e)
        return Success(entity)

    async def delete(self, id: str) -> Result[bool, DatabaseError]:
        try:
            result = await self.session.execute(sa_delete(self.model).where(self.model.id == id))
            await self.session.flush()
        except SQLAlchemyError as e:
            return self._db_failure("delete", e)
        return Success(result.rowcount > 0)
