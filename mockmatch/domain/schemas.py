"""Typed records passed between the data-access layer and the matching rules.

Rows and request payloads arrive as loosely shaped JSON (camelCase from the
browser, snake_case from the database, availability stored either as a JSON
string or an object). Everything is normalised here once so the rules in
``matching``, ``availability`` and ``coupons`` only ever see these records.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterator, Mapping, Optional

from mockmatch.core.time_utils import (
    WEEKDAYS,
    ensure_aware,
    format_clock,
    normalize_weekday,
    parse_clock,
)

logger = logging.getLogger(__name__)

DEFAULT_STRING_SLOT_MINUTES = 60


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open time-of-day range ``[start, end)`` in minutes after midnight."""

    start: int
    end: int

    @classmethod
    def from_strings(cls, start: str, end: str) -> "TimeRange":
        return cls(parse_clock(start), parse_clock(end))

    @property
    def start_time(self) -> str:
        return format_clock(self.start)

    @property
    def end_time(self) -> str:
        return format_clock(self.end)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    @property
    def label(self) -> str:
        return f"{self.start_time}-{self.end_time}"

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and self.end > other.start

    def slices(self, minutes: int) -> list["TimeRange"]:
        """Consecutive ``minutes``-long segments that fit inside the range."""
        if minutes <= 0:
            raise ValueError("slice length must be positive")
        segments = []
        cursor = self.start
        while cursor + minutes <= self.end:
            segments.append(TimeRange(cursor, cursor + minutes))
            cursor += minutes
        return segments


def _parse_slot_entry(entry: Any) -> Optional[TimeRange]:
    if isinstance(entry, Mapping):
        start = entry.get("start") or entry.get("start_time")
        end = entry.get("end") or entry.get("end_time")
        if not start or not end:
            return None
        return TimeRange.from_strings(start, end)
    if isinstance(entry, str):
        text = entry.strip()
        if "-" in text:
            start, _, end = text.partition("-")
            return TimeRange.from_strings(start, end)
        start = parse_clock(text)
        return TimeRange(start, start + DEFAULT_STRING_SLOT_MINUTES)
    return None


@dataclass(frozen=True)
class WeeklyAvailability:
    """Declared weekly schedule: canonical weekday name -> ranges in declaration order."""

    days: Mapping[str, tuple[TimeRange, ...]] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any) -> "WeeklyAvailability":
        if raw is None or raw == "":
            return cls({})
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring availability that is not valid JSON: %r", raw[:80])
                return cls({})
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring availability of unexpected type %s", type(raw).__name__)
            return cls({})

        days: dict[str, tuple[TimeRange, ...]] = {}
        for key, entries in raw.items():
            day = normalize_weekday(key)
            if day is None or not isinstance(entries, (list, tuple)):
                continue
            ranges = []
            for entry in entries:
                try:
                    parsed = _parse_slot_entry(entry)
                except (TypeError, ValueError):
                    logger.warning("Skipping malformed %s slot %r", day, entry)
                    continue
                if parsed is not None and not parsed.is_empty:
                    ranges.append(parsed)
            if ranges:
                days[day] = days.get(day, ()) + tuple(ranges)
        return cls(days)

    def for_day(self, day: str) -> tuple[TimeRange, ...]:
        return self.days.get(day, ())

    def __iter__(self) -> Iterator[tuple[str, TimeRange]]:
        for day, ranges in self.days.items():
            for time_range in ranges:
                yield day, time_range

    def __bool__(self) -> bool:
        return any(self.days.values())

    def to_json(self) -> dict[str, list[dict[str, str]]]:
        return {
            day: [{"start": r.start_time, "end": r.end_time} for r in self.days[day]]
            for day in WEEKDAYS
            if day in self.days
        }


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_str_tuple(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    return tuple(str(v).strip() for v in values if v is not None and str(v).strip())


@dataclass(frozen=True)
class CandidateRequest:
    target_role: str
    experience: Optional[str] = None
    time_slot: Optional[str] = None
    resume_url: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    user_id: Optional[str] = None
    plan_id: Optional[str] = None
    skill_categories: tuple[str, ...] = ()
    specific_skills: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CandidateRequest":
        categories = _as_str_tuple(_pick(payload, "skill_categories", "skillCategories"))
        role = _pick(payload, "target_role", "targetRole", "interviewType", "role")
        if not role and categories:
            role = categories[0]
        if not role:
            raise ValueError("target role is required")
        experience = _pick(payload, "experience", "experienceYears", "experience_years")
        return cls(
            target_role=str(role).strip(),
            skill_categories=categories or (str(role).strip(),),
            specific_skills=_as_str_tuple(_pick(payload, "specific_skills", "specificSkills")),
            experience=None if experience is None else str(experience),
            time_slot=_pick(payload, "time_slot", "timeSlot", "preferred_time", "scheduled_time"),
            resume_url=_pick(payload, "resume_url", "resumeUrl"),
            name=_pick(payload, "name", "candidate_name", "candidateName"),
            email=_pick(payload, "email", "candidate_email", "candidateEmail"),
            user_id=_pick(payload, "user_id", "userId"),
            plan_id=_pick(payload, "plan", "plan_id", "planId", "selectedPlan"),
        )


@dataclass(frozen=True)
class InterviewerProfile:
    id: str
    skills: tuple[str, ...] = ()
    technologies: tuple[str, ...] = ()
    availability: WeeklyAvailability = field(default_factory=WeeklyAvailability)
    experience_years: Optional[int] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None

    @classmethod
    def from_model(cls, interviewer: Any) -> "InterviewerProfile":
        return cls(
            id=str(interviewer.id),
            skills=_as_str_tuple(interviewer.skills),
            technologies=_as_str_tuple(interviewer.technologies),
            availability=WeeklyAvailability.parse(interviewer.time_slots),
            experience_years=interviewer.experience_years,
            full_name=interviewer.full_name,
            email=interviewer.email,
            company=interviewer.company,
            position=interviewer.position,
        )


@dataclass(frozen=True)
class BlockedRange:
    blocked_date: date
    range: TimeRange
    reason: str = "manual"
    is_temporary: bool = False
    expires_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, block: Any) -> "BlockedRange":
        expires_at = block.expires_at
        return cls(
            blocked_date=block.blocked_date,
            range=TimeRange.from_strings(block.start_time, block.end_time),
            reason=block.block_reason,
            is_temporary=bool(block.is_temporary),
            expires_at=ensure_aware(expires_at) if expires_at is not None else None,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.is_temporary and self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class AvailableTimeSlot:
    date: date
    day_name: str
    range: TimeRange
    is_preferred_day: bool = False

    @property
    def start_time(self) -> str:
        return self.range.start_time

    @property
    def end_time(self) -> str:
        return self.range.end_time

    @property
    def display_text(self) -> str:
        return f"{self.day_name}, {self.date:%d/%m/%Y} {self.range.label}"

    def sort_key(self) -> tuple[int, date, int]:
        return (0 if self.is_preferred_day else 1, self.date, self.range.start)

    def as_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_name": self.day_name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "display_text": self.display_text,
        }


@dataclass(frozen=True)
class DiscountCalculation:
    original_price: float
    discount_amount: float
    final_price: float
    discount_type: str
    discount_value: float


@dataclass(frozen=True)
class PriceQuote:
    plan_id: str
    base_price: float
    discount: Optional[DiscountCalculation]
    add_on_total: float
    final_price: float
    coupon_code: Optional[str] = None
    add_ons: tuple[str, ...] = ()


@dataclass
class MatchResult:
    interviewer: InterviewerProfile
    score: int = 0
    reasons: list[str] = field(default_factory=list)
    skill_match: bool = False
    time_match: bool = False
    experience_match: bool = False
    skill_quality: str = "none"
    alternative_time_slots: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "interviewer_id": self.interviewer.id,
            "interviewer_name": self.interviewer.full_name,
            "score": self.score,
            "reasons": list(self.reasons),
            "skill_match": self.skill_match,
            "time_match": self.time_match,
            "experience_match": self.experience_match,
            "skill_quality": self.skill_quality,
            "alternative_time_slots": list(self.alternative_time_slots),
        }
