from datetime import date, datetime, timedelta, timezone

import pytest

from mockmatch.domain.errors import (
    InvalidTimeSlotError,
    ReservationNotFoundError,
    SlotUnavailableError,
    TemporaryBlockError,
)
from mockmatch.domain.models import BlockReason, Interviewer
from mockmatch.domain.reservations import (
    cleanup_expired_reservations,
    convert_temporary_to_permanent,
    create_temporary_reservation,
    get_blocked_time_slots,
    get_reservation_details,
    get_user_temporary_reservations,
    is_time_slot_available,
    manually_block_time_slot,
    new_time_block,
    parse_slot_request,
    release_temporary_reservation,
    remove_time_block,
)
from mockmatch.domain.schemas import TimeRange

SLOT_DATE = date(2025, 9, 2)


async def _interviewer(session) -> Interviewer:
    interviewer = Interviewer(full_name="Meera Iyer", time_slots={"Tuesday": ["17:00-19:00"]})
    session.add(interviewer)
    await session.commit()
    return interviewer


def test_parse_display_slot_with_end_time():
    request = parse_slot_request("Tuesday, 02/09/2025 17:30-18:00")
    assert request.blocked_date == SLOT_DATE
    assert (request.start_time, request.end_time) == ("17:30", "18:00")


def test_parse_display_slot_uses_duration_without_end():
    request = parse_slot_request("02/09/2025 17:30", duration_minutes=60)
    assert (request.start_time, request.end_time) == ("17:30", "18:30")


def test_parse_iso_slot():
    request = parse_slot_request("2025-09-02T09:15:00")
    assert request.blocked_date == SLOT_DATE
    assert (request.start_time, request.end_time) == ("09:15", "09:45")


@pytest.mark.parametrize(
    "value",
    ["", "tomorrow evening", "31/02/2025 10:00", "02/09/2025 23:45", "02/09/2025 18:00-17:00"],
)
def test_parse_rejects_bad_slots(value):
    with pytest.raises(InvalidTimeSlotError):
        parse_slot_request(value)


def test_temporary_block_requires_expiry():
    with pytest.raises(TemporaryBlockError):
        new_time_block(
            "i1",
            SLOT_DATE,
            TimeRange.from_strings("10:00", "11:00"),
            reason=BlockReason.TEMPORARY_RESERVATION,
            is_temporary=True,
        )


@pytest.mark.asyncio
async def test_hold_blocks_overlapping_requests(session):
    interviewer = await _interviewer(session)
    hold = await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:30", "u1")

    assert hold.is_temporary
    assert hold.block_reason == BlockReason.TEMPORARY_RESERVATION
    assert hold.reserved_by_user_id == "u1"
    assert (hold.start_time, hold.end_time) == ("17:30", "18:00")

    with pytest.raises(SlotUnavailableError):
        await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:45", "u2")

    # touching ranges do not overlap
    follow_up = await create_temporary_reservation(session, interviewer.id, "02/09/2025 18:00", "u2")
    assert follow_up.start_time == "18:00"


@pytest.mark.asyncio
async def test_expired_hold_does_not_block(session):
    interviewer = await _interviewer(session)
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:30", "u1", now=past)

    assert await is_time_slot_available(
        session, interviewer.id, SLOT_DATE, TimeRange.from_strings("17:30", "18:00")
    )
    assert await get_blocked_time_slots(session, interviewer.id, SLOT_DATE, SLOT_DATE) == []


@pytest.mark.asyncio
async def test_convert_hold_to_permanent(session):
    interviewer = await _interviewer(session)
    hold = await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:30", "u1")

    block = await convert_temporary_to_permanent(session, hold.id, "interview-1")
    assert block.is_temporary is False
    assert block.expires_at is None
    assert block.block_reason == BlockReason.INTERVIEW_SCHEDULED
    assert block.interview_id == "interview-1"
    assert block.updated_at is not None

    with pytest.raises(ReservationNotFoundError):
        await convert_temporary_to_permanent(session, hold.id, "interview-2")
    with pytest.raises(ReservationNotFoundError):
        await convert_temporary_to_permanent(session, "missing", "interview-2")


@pytest.mark.asyncio
async def test_release_only_touches_temporary_holds(session):
    interviewer = await _interviewer(session)
    manual = await manually_block_time_slot(
        session, interviewer.id, SLOT_DATE, TimeRange.from_strings("09:00", "10:00")
    )
    hold = await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:30", "u1")

    assert await release_temporary_reservation(session, manual.id) is False
    assert await release_temporary_reservation(session, hold.id) is True
    assert await get_reservation_details(session, hold.id) is None
    assert await get_reservation_details(session, manual.id) is not None

    assert await remove_time_block(session, manual.id) is True
    assert await get_reservation_details(session, manual.id) is None


@pytest.mark.asyncio
async def test_user_reservations_list_live_holds(session):
    interviewer = await _interviewer(session)
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    await create_temporary_reservation(session, interviewer.id, "02/09/2025 17:00", "u1", now=past)
    live = await create_temporary_reservation(session, interviewer.id, "02/09/2025 18:00", "u1")
    await create_temporary_reservation(session, interviewer.id, "02/09/2025 18:30", "u2")

    holds = await get_user_temporary_reservations(session, "u1")
    assert [h.id for h in holds] == [live.id]


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_holds(session):
    interviewer = await _interviewer(session)
    now = datetime.now(timezone.utc)
    expired = await create_temporary_reservation(
        session, interviewer.id, "02/09/2025 17:00", "u1", now=now - timedelta(minutes=30)
    )
    live = await create_temporary_reservation(session, interviewer.id, "02/09/2025 18:00", "u2", now=now)
    manual = await manually_block_time_slot(
        session, interviewer.id, SLOT_DATE, TimeRange.from_strings("09:00", "10:00")
    )

    assert await cleanup_expired_reservations(session, now=now) == 1
    assert await get_reservation_details(session, expired.id) is None
    assert await get_reservation_details(session, live.id) is not None
    assert await get_reservation_details(session, manual.id) is not None

    assert await cleanup_expired_reservations(session, now=now) == 0
