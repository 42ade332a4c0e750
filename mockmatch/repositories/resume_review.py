from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.repository.base import BaseRepository
from mockmatch.domain.models import ResumeReview


class ResumeReviewRepository(BaseRepository[ResumeReview]):
    def __init__(self, session: AsyncSession):
        super().__init__(ResumeReview, session)
