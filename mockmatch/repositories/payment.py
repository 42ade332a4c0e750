from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.repository.base import BaseRepository
from mockmatch.domain.models import Interview, PaymentSession


class PaymentSessionRepository(BaseRepository[PaymentSession]):
    def __init__(self, session: AsyncSession):
        super().__init__(PaymentSession, session)


class InterviewRepository(BaseRepository[Interview]):
    def __init__(self, session: AsyncSession):
        super().__init__(Interview, session)
