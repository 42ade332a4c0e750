from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from mockmatch.domain.models import Interviewer
from mockmatch.domain.reservations import create_temporary_reservation, get_reservation_details
from mockmatch.services.cleanup import CleanupService


@pytest.mark.asyncio
async def test_run_cleanup_removes_expired_holds(session):
    interviewer = Interviewer(full_name="Kiran", time_slots={"Monday": ["10:00-12:00"]})
    session.add(interviewer)
    await session.commit()

    past = datetime.now(timezone.utc) - timedelta(hours=1)
    expired = await create_temporary_reservation(session, interviewer.id, "18/08/2025 10:00", "u1", now=past)
    live = await create_temporary_reservation(session, interviewer.id, "18/08/2025 11:00", "u2")

    service = CleanupService()
    assert await service.run_cleanup() == 1
    assert service.last_removed == 1

    session.expunge_all()
    assert await get_reservation_details(session, expired.id) is None
    assert await get_reservation_details(session, live.id) is not None


@pytest.mark.asyncio
async def test_run_cleanup_swallows_database_errors():
    @asynccontextmanager
    async def broken_session():
        raise RuntimeError("database is down")
        yield  # pragma: no cover

    service = CleanupService(session_factory=broken_session)
    assert await service.run_cleanup() == 0


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent():
    service = CleanupService()
    assert not service.is_running

    service.start(5)
    assert service.is_running
    assert service.interval_minutes == 5

    service.start(5)
    assert service.interval_minutes == 5

    service.start(10)
    assert service.is_running
    assert service.interval_minutes == 10

    service.stop()
    assert not service.is_running
    assert service.interval_minutes is None
    service.stop()


def test_start_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        CleanupService().start(0)
