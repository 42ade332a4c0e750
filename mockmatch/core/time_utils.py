from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, available_timezones

DEFAULT_TIMEZONE = "UTC"

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_TZ_CACHE = {name.lower(): name for name in available_timezones()}
_WEEKDAY_LOOKUP = {name.lower(): name for name in WEEKDAYS}
_WEEKDAY_LOOKUP.update({name[:3].lower(): name for name in WEEKDAYS})


def parse_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Parse a timezone name into a ZoneInfo.

    ``None`` maps to UTC; matching is case-insensitive and tolerates spaces.
    Raises ValueError for unknown names.
    """
    if tz_name is None:
        return ZoneInfo(DEFAULT_TIMEZONE)

    cleaned = tz_name.strip()
    if cleaned == "":
        raise ValueError("Timezone is empty")

    normalized = cleaned.lower().replace(" ", "_")
    if normalized in _TZ_CACHE:
        return ZoneInfo(_TZ_CACHE[normalized])
    raise ValueError(f"Invalid timezone: {tz_name}")


def ensure_aware(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Attach ``tz_name`` (UTC by default) to naive datetimes; aware ones pass through."""
    if dt.tzinfo is not None and dt.tzinfo.utcoffset(dt) is not None:
        return dt
    tz = parse_timezone(tz_name) if tz_name else timezone.utc
    return dt.replace(tzinfo=tz)


def normalize_to_utc(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    return ensure_aware(dt, tz_name).astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed); ``None`` when it cannot be parsed."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text.replace(" ", "T", 1))
    except ValueError:
        return None


def to_local(dt: datetime, tz_name: Optional[str]) -> datetime:
    """Express an aware datetime in ``tz_name``; naive datetimes are already local."""
    if tz_name is None or dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt
    return dt.astimezone(parse_timezone(tz_name))


def parse_clock(value: str) -> int:
    """Convert ``"HH:MM"`` (or ``"H"``) to minutes after midnight."""
    text = str(value).strip()
    hours_text, _, minutes_text = text.partition(":")
    hours = int(hours_text)
    minutes = int(minutes_text[:2] or 0)
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or (hours == 24 and minutes):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def normalize_weekday(value: str) -> Optional[str]:
    """Map ``"monday"``, ``"Mon"`` or ``"MONDAY"`` to ``"Monday"``."""
    return _WEEKDAY_LOOKUP.get(str(value).strip().lower())


__all__ = [
    "WEEKDAYS",
    "parse_timezone",
    "ensure_aware",
    "normalize_to_utc",
    "utcnow",
    "parse_iso_datetime",
    "to_local",
    "parse_clock",
    "format_clock",
    "weekday_name",
    "normalize_weekday",
]
