"""Interviewer time blocks: manual blocks, checkout holds and their conversion.

A checkout hold is a temporary block that expires after a few minutes. When
payment succeeds it becomes a permanent ``interview_scheduled`` block; when
payment fails it is released, and anything left over is swept by the
cleanup service.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.result import Failure
from mockmatch.core.time_utils import parse_iso_datetime, utcnow
from mockmatch.domain.errors import (
    InvalidTimeSlotError,
    ReservationNotFoundError,
    SlotUnavailableError,
    TemporaryBlockError,
)
from mockmatch.domain.models import BlockReason, InterviewerTimeBlock
from mockmatch.domain.schemas import BlockedRange, TimeRange
from mockmatch.repositories.time_block import TimeBlockRepository

logger = logging.getLogger(__name__)

DEFAULT_HOLD_MINUTES = 10
DEFAULT_RESERVATION_MINUTES = 30

# "Tuesday, 02/09/2025 17:30-18:00" or "02/09/2025 17:30"
_DISPLAY_SLOT_RE = re.compile(
    r"(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})"
    r"(?:\s*-\s*(?P<end_hour>\d{1,2}):(?P<end_minute>\d{2}))?"
)


@dataclass(frozen=True)
class SlotRequest:
    blocked_date: date
    range: TimeRange

    @property
    def start_time(self) -> str:
        return self.range.start_time

    @property
    def end_time(self) -> str:
        return self.range.end_time


def parse_slot_request(value: str, duration_minutes: int = DEFAULT_RESERVATION_MINUTES) -> SlotRequest:
    """
    Parse a chosen slot into a date and time range.

    Accepts the display form ``"Monday, 16/08/2025 10:00-11:00"`` (day-first
    date, end optional) and ISO datetimes. Without an explicit end the range
    lasts ``duration_minutes``.
    """
    text = (value or "").strip()
    match = _DISPLAY_SLOT_RE.search(text)
    if match:
        try:
            slot_date = date(int(match["year"]), int(match["month"]), int(match["day"]))
        except ValueError as exc:
            raise InvalidTimeSlotError(f"Invalid date in time slot: {value!r}") from exc
        start = int(match["hour"]) * 60 + int(match["minute"])
        if match["end_hour"] is not None:
            end = int(match["end_hour"]) * 60 + int(match["end_minute"])
        else:
            end = start + duration_minutes
    else:
        parsed = parse_iso_datetime(text)
        if parsed is None:
            raise InvalidTimeSlotError(f"Invalid time slot format: {value!r}")
        slot_date = parsed.date()
        start = parsed.hour * 60 + parsed.minute
        end = start + duration_minutes

    if end <= start or end > 24 * 60:
        raise InvalidTimeSlotError(f"Time slot does not fit in one day: {value!r}")
    return SlotRequest(blocked_date=slot_date, range=TimeRange(start, end))


def new_time_block(
    interviewer_id: str,
    blocked_date: date,
    time_range: TimeRange,
    *,
    reason: str = BlockReason.MANUAL,
    is_temporary: bool = False,
    expires_at: Optional[datetime] = None,
    reserved_by_user_id: Optional[str] = None,
    interview_id: Optional[str] = None,
) -> InterviewerTimeBlock:
    if is_temporary and expires_at is None:
        raise TemporaryBlockError("Temporary time blocks must carry an expiry")
    if time_range.is_empty:
        raise InvalidTimeSlotError(f"Empty time range {time_range.label}")
    return InterviewerTimeBlock(
        interviewer_id=interviewer_id,
        blocked_date=blocked_date,
        start_time=time_range.start_time,
        end_time=time_range.end_time,
        block_reason=reason,
        is_temporary=is_temporary,
        expires_at=expires_at,
        reserved_by_user_id=reserved_by_user_id,
        interview_id=interview_id,
    )


async def get_blocked_time_slots(
    session: AsyncSession,
    interviewer_id: str,
    start: date,
    end: date,
) -> list[BlockedRange]:
    result = await TimeBlockRepository(session).list_between(interviewer_id, start, end)
    if isinstance(result, Failure):
        logger.error("Could not load blocked slots for %s: %s", interviewer_id, result.error)
        return []
    return [BlockedRange.from_model(row) for row in result.unwrap()]


async def is_time_slot_available(
    session: AsyncSession,
    interviewer_id: str,
    blocked_date: date,
    time_range: TimeRange,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """False when any live block on that date overlaps the range, or when blocks cannot be read."""
    result = await TimeBlockRepository(session).list_for_date(interviewer_id, blocked_date, now=now)
    if isinstance(result, Failure):
        logger.error("Could not check availability for %s on %s: %s", interviewer_id, blocked_date, result.error)
        return False
    return not any(
        TimeRange.from_strings(row.start_time, row.end_time).overlaps(time_range)
        for row in result.unwrap()
    )


async def manually_block_time_slot(
    session: AsyncSession,
    interviewer_id: str,
    blocked_date: date,
    time_range: TimeRange,
    *,
    reason: str = BlockReason.MANUAL,
) -> InterviewerTimeBlock:
    block = new_time_block(interviewer_id, blocked_date, time_range, reason=reason)
    saved = (await TimeBlockRepository(session).add(block)).unwrap()
    await session.commit()
    logger.info("Blocked %s on %s %s (%s)", interviewer_id, blocked_date, time_range.label, reason)
    return saved


async def remove_time_block(session: AsyncSession, block_id: str) -> bool:
    deleted = (await TimeBlockRepository(session).delete(block_id)).unwrap()
    await session.commit()
    return deleted


async def create_temporary_reservation(
    session: AsyncSession,
    interviewer_id: str,
    time_slot: str,
    user_id: Optional[str],
    *,
    duration_minutes: int = DEFAULT_RESERVATION_MINUTES,
    hold_minutes: int = DEFAULT_HOLD_MINUTES,
    now: Optional[datetime] = None,
) -> InterviewerTimeBlock:
    """Hold a slot while the candidate pays. Raises SlotUnavailableError when it is taken."""
    now = now or utcnow()
    request = parse_slot_request(time_slot, duration_minutes)
    if not await is_time_slot_available(session, interviewer_id, request.blocked_date, request.range, now=now):
        raise SlotUnavailableError(interviewer_id, request.blocked_date, request.start_time, request.end_time)

    block = new_time_block(
        interviewer_id,
        request.blocked_date,
        request.range,
        reason=BlockReason.TEMPORARY_RESERVATION,
        is_temporary=True,
        expires_at=now + timedelta(minutes=hold_minutes),
        reserved_by_user_id=user_id,
    )
    saved = (await TimeBlockRepository(session).add(block)).unwrap()
    await session.commit()
    logger.info(
        "Temporary reservation %s for interviewer %s on %s %s (expires %s)",
        saved.id,
        interviewer_id,
        request.blocked_date,
        request.range.label,
        block.expires_at.isoformat(),
    )
    return saved


def _make_permanent(block: InterviewerTimeBlock, interview_id: Optional[str], now: datetime) -> None:
    block.is_temporary = False
    block.expires_at = None
    block.block_reason = BlockReason.INTERVIEW_SCHEDULED
    block.interview_id = interview_id
    block.updated_at = now


async def convert_temporary_to_permanent(
    session: AsyncSession,
    reservation_id: str,
    interview_id: str,
    *,
    now: Optional[datetime] = None,
) -> InterviewerTimeBlock:
    """Turn a checkout hold into an ``interview_scheduled`` block.

    Raises ReservationNotFoundError when no temporary row has that id,
    including when it was already converted.
    """
    repo = TimeBlockRepository(session)
    result = await repo.get_temporary(reservation_id)
    if isinstance(result, Failure):
        raise ReservationNotFoundError(reservation_id)
    block = result.unwrap()
    _make_permanent(block, interview_id, now or utcnow())
    saved = (await repo.save(block)).unwrap()
    await session.commit()
    logger.info("Reservation %s converted for interview %s", reservation_id, interview_id)
    return saved


async def convert_reservation_for_slot(
    session: AsyncSession,
    interviewer_id: str,
    request: SlotRequest,
    interview_id: Optional[str],
    *,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Make every hold on that exact slot permanent; returns how many rows changed.

    The caller commits.
    """
    repo = TimeBlockRepository(session)
    result = await repo.find_temporary_for_slot(
        interviewer_id,
        request.blocked_date,
        request.start_time,
        user_id=user_id,
    )
    if isinstance(result, Failure):
        logger.warning("Could not look up holds for %s on %s: %s", interviewer_id, request.blocked_date, result.error)
        return 0
    rows = list(result.unwrap())
    moment = now or utcnow()
    for block in rows:
        _make_permanent(block, interview_id, moment)
    if rows:
        await session.flush()
    return len(rows)


async def release_temporary_reservation(session: AsyncSession, reservation_id: str) -> bool:
    repo = TimeBlockRepository(session)
    result = await repo.get_temporary(reservation_id)
    if isinstance(result, Failure):
        logger.info("Nothing to release for reservation %s", reservation_id)
        return False
    deleted = (await repo.delete(reservation_id)).unwrap()
    await session.commit()
    return deleted


async def get_user_temporary_reservations(
    session: AsyncSession,
    user_id: str,
    *,
    now: Optional[datetime] = None,
) -> Sequence[InterviewerTimeBlock]:
    result = await TimeBlockRepository(session).list_temporary_for_user(user_id, now=now)
    if isinstance(result, Failure):
        logger.error("Could not load reservations for user %s: %s", user_id, result.error)
        return []
    return result.unwrap()


async def get_reservation_details(session: AsyncSession, reservation_id: str) -> Optional[InterviewerTimeBlock]:
    result = await TimeBlockRepository(session).get(reservation_id)
    return result.unwrap_or(None)


async def cleanup_expired_reservations(session: AsyncSession, *, now: Optional[datetime] = None) -> int:
    """Delete temporary blocks past expiry; returns how many were removed."""
    removed = (await TimeBlockRepository(session).delete_expired_temporary(now)).unwrap()
    await session.commit()
    if removed:
        logger.info("Removed %d expired temporary reservations", removed)
    return removed

