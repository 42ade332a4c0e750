"""Periodic sweep of expired checkout holds, backed by APScheduler."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from mockmatch.core.db import async_session
from mockmatch.core.metrics import CLEANUP_REMOVED, CLEANUP_RUNS
from mockmatch.domain.reservations import cleanup_expired_reservations

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 5
JOB_ID = "cleanup-expired-reservations"


class CleanupService:
    """
    Deletes temporary reservations past their expiry on a fixed interval.

    The first sweep runs as soon as the service starts. ``start`` and
    ``stop`` may be called repeatedly.
    """

    def __init__(self, *, scheduler: Optional[AsyncIOScheduler] = None, session_factory=async_session) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._session_factory = session_factory
        self._interval_minutes: Optional[int] = None
        self.last_removed = 0

    @property
    def is_running(self) -> bool:
        return self._scheduler.running and self._scheduler.get_job(JOB_ID) is not None

    @property
    def interval_minutes(self) -> Optional[int]:
        return self._interval_minutes if self.is_running else None

    def start(self, interval_minutes: int = DEFAULT_INTERVAL_MINUTES) -> None:
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        if self.is_running and self._interval_minutes == interval_minutes:
            return
        self._scheduler.add_job(
            self.run_cleanup,
            "interval",
            minutes=interval_minutes,
            id=JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        self._interval_minutes = interval_minutes
        logger.info("Reservation cleanup scheduled every %d minutes", interval_minutes)

    def stop(self) -> None:
        if self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Reservation cleanup stopped")
        self._interval_minutes = None

    async def run_cleanup(self) -> int:
        try:
            async with self._session_factory() as session:
                removed = await cleanup_expired_reservations(session)
        except Exception:
            logger.exception("Expired reservation cleanup failed")
            CLEANUP_RUNS.labels(outcome="error").inc()
            return 0
        CLEANUP_RUNS.labels(outcome="ok").inc()
        if removed:
            CLEANUP_REMOVED.inc(removed)
        self.last_removed = removed
        return removed


__all__ = ["CleanupService", "DEFAULT_INTERVAL_MINUTES"]
