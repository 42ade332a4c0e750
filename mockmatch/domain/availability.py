from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.result import Failure
from mockmatch.core.time_utils import parse_iso_datetime, utcnow, weekday_name
from mockmatch.domain.schemas import (
    AvailableTimeSlot,
    BlockedRange,
    TimeRange,
    WeeklyAvailability,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 14
DEFAULT_SLOT_LIMIT = 3


def ranges_overlap(first: TimeRange, second: TimeRange) -> bool:
    """Half-open overlap: ``first.start < second.end and first.end > second.start``."""
    return first.overlaps(second)


def _index_blocks(blocks: Iterable[BlockedRange], now: datetime) -> dict[date, list[TimeRange]]:
    by_date: dict[date, list[TimeRange]] = defaultdict(list)
    for block in blocks:
        if block.is_expired(now):
            continue
        by_date[block.blocked_date].append(block.range)
    return by_date


def compute_available_slots(
    availability: Union[WeeklyAvailability, Any],
    blocks: Iterable[BlockedRange],
    start_date: date,
    *,
    days: int = DEFAULT_WINDOW_DAYS,
    limit: int = DEFAULT_SLOT_LIMIT,
    now: Optional[datetime] = None,
    slot_minutes: Optional[int] = None,
) -> list[AvailableTimeSlot]:
    """
    Open slots for ``[start_date, start_date + days]``, preferred day first.

    A declared slot is dropped whole when any live block on that date
    overlaps it. With ``slot_minutes`` each declared slot is first cut into
    segments of that length and the segments are checked one by one.
    """
    weekly = availability if isinstance(availability, WeeklyAvailability) else WeeklyAvailability.parse(availability)
    blocked = _index_blocks(blocks, now or utcnow())

    found: list[AvailableTimeSlot] = []
    for offset in range(days + 1):
        current = start_date + timedelta(days=offset)
        day = weekday_name(current)
        blocked_today = blocked.get(current, ())
        for declared in weekly.for_day(day):
            candidates = declared.slices(slot_minutes) if slot_minutes else [declared]
            for candidate in candidates:
                if any(ranges_overlap(candidate, b) for b in blocked_today):
                    continue
                found.append(
                    AvailableTimeSlot(
                        date=current,
                        day_name=day,
                        range=candidate,
                        is_preferred_day=current == start_date,
                    )
                )

    found.sort(key=AvailableTimeSlot.sort_key)
    return found[:limit]


def resolve_start_date(preferred: Union[str, date, datetime, None], today: Optional[date] = None) -> date:
    """Start of the look-ahead window: the preferred date when given and parseable, else today."""
    if isinstance(preferred, datetime):
        return preferred.date()
    if isinstance(preferred, date):
        return preferred
    parsed = parse_iso_datetime(preferred) if preferred else None
    if parsed is None and preferred:
        try:
            return date.fromisoformat(str(preferred).strip()[:10])
        except ValueError:
            logger.warning("Ignoring unparseable preferred date %r", preferred)
    if parsed is not None:
        return parsed.date()
    return today or utcnow().date()


async def get_available_time_slots(
    session: AsyncSession,
    interviewer_id: str,
    availability: Any,
    preferred_date: Union[str, date, datetime, None] = None,
    *,
    days: int = DEFAULT_WINDOW_DAYS,
    limit: int = DEFAULT_SLOT_LIMIT,
    slot_minutes: Optional[int] = None,
) -> list[AvailableTimeSlot]:
    """Open slots for an interviewer, reading blocks from the database.

    A failed block lookup is logged and yields an empty list.
    """
    from mockmatch.repositories.time_block import TimeBlockRepository

    start_date = resolve_start_date(preferred_date)
    repo = TimeBlockRepository(session)
    result = await repo.list_between(interviewer_id, start_date, start_date + timedelta(days=days))
    if isinstance(result, Failure):
        logger.error("Could not load time blocks for interviewer %s: %s", interviewer_id, result.error)
        return []

    blocks = [BlockedRange.from_model(row) for row in result.unwrap()]
    return compute_available_slots(
        availability,
        blocks,
        start_date,
        days=days,
        limit=limit,
        slot_minutes=slot_minutes,
    )


def to_booking_datetime(slot: AvailableTimeSlot) -> datetime:
    """Naive local datetime at which the chosen slot starts."""
    return datetime.combine(slot.date, time(slot.range.start // 60, slot.range.start % 60))


__all__ = [
    "DEFAULT_WINDOW_DAYS",
    "DEFAULT_SLOT_LIMIT",
    "ranges_overlap",
    "compute_available_slots",
    "resolve_start_date",
    "get_available_time_slots",
    "to_booking_datetime",
]
