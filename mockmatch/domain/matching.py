"""Candidate to interviewer matching rules.

Pure functions only: callers load interviewers and hand over
``InterviewerProfile`` records. Nothing here touches the database.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional, Sequence, Union

from mockmatch.core.time_utils import parse_iso_datetime, to_local, weekday_name
from mockmatch.domain.schemas import (
    CandidateRequest,
    InterviewerProfile,
    MatchResult,
    WeeklyAvailability,
)

logger = logging.getLogger(__name__)

# Canonical role -> keywords an interviewer's skills/technologies are compared against.
ROLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Frontend Developer": (
        "HTML", "CSS", "JavaScript", "TypeScript", "React", "Vue.js", "Angular",
        "Svelte", "Next.js", "State Management (Redux, Vuex, Pinia)",
        "Responsive Design", "API Integration", "Jest", "Cypress",
    ),
    "Java Backend Developer": (
        "Java", "Spring Boot", "Hibernate/JPA", "REST APIs", "Microservices",
        "SQL", "NoSQL", "Kafka", "RabbitMQ", "Redis", "Docker", "Kubernetes",
        "CI/CD (Jenkins, GitHub Actions)", "JUnit", "Mockito",
    ),
    "Python Backend Developer": (
        "Python", "Django", "Flask", "FastAPI", "REST APIs", "SQLAlchemy",
        "PostgreSQL", "MySQL", "Celery", "Redis", "Microservices", "Docker",
        "Kubernetes", "CI/CD", "Pytest",
    ),
    ".NET Backend Developer": (
        "C#", ".NET Core", "ASP.NET", "Entity Framework", "SQL Server",
        "REST APIs", "Microservices", "Docker", "Kubernetes", "CI/CD", "Redis", "xUnit",
    ),
    "Full Stack Developer": (
        "Angular", "React", "Node.js", "Express.js", "Java", "Spring Boot",
        "MongoDB", "JavaScript", "TypeScript", "REST APIs", "GraphQL",
        "Microservices", "JWT/Auth", "State Management", "Docker", "CI/CD",
    ),
    "Mobile Developer (Android)": (
        "Java", "Kotlin", "Android SDK", "Jetpack Compose", "XML Layouts",
        "SQLite", "Room", "REST APIs", "Firebase", "Unit Testing (JUnit, Espresso)",
    ),
    "Mobile Developer (iOS)": (
        "Swift", "SwiftUI", "Objective-C", "iOS SDK", "CoreData", "SQLite",
        "REST APIs", "Firebase", "Unit Testing (XCTest)",
    ),
    "Mobile Developer (Cross-Platform)": (
        "React Native", "Flutter", "Dart", "JavaScript", "TypeScript",
        "REST APIs", "Firebase", "SQLite", "CI/CD",
    ),
    "DevOps Engineer": (
        "Linux", "Shell Scripting", "CI/CD Pipelines", "Docker", "Kubernetes",
        "Terraform", "Ansible", "AWS", "GCP", "Azure",
        "Monitoring (Prometheus, Grafana)", "Logging (ELK Stack)", "Git",
        "Networking Basics",
    ),
}

_ROLE_LOOKUP = {name.lower(): name for name in ROLE_KEYWORDS}

SKILL_QUALITY_THRESHOLDS = (("excellent", 40), ("good", 20), ("poor", 5))

TIME_SLOT_TOLERANCE_HOURS = 1
MAX_ALTERNATIVE_SLOTS = 3

TIME_MATCH_POINTS = 25
ALTERNATIVES_POINTS = 5
GOOD_MATCH_SCORE = 40
MINIMUM_MATCH_SCORE = 25

AvailabilityInput = Union[WeeklyAvailability, str, dict, None]


def role_keywords(role: str) -> list[str]:
    """Keywords for ``role``; unknown roles fall back to the raw role string."""
    cleaned = (role or "").strip()
    if not cleaned:
        return []
    canonical = _ROLE_LOOKUP.get(cleaned.lower())
    if canonical is None:
        return [cleaned]
    return [canonical, *ROLE_KEYWORDS[canonical]]


def _terms_match(left: str, right: str) -> bool:
    a = left.strip().lower()
    b = right.strip().lower()
    if not a or not b:
        return False
    return a == b or a in b or b in a


def match_role(role: str, skills: Iterable[str], technologies: Iterable[str]) -> bool:
    offered = [s for s in (*(skills or ()), *(technologies or ())) if s and str(s).strip()]
    if not offered:
        return False
    return any(
        _terms_match(keyword, str(skill))
        for keyword in role_keywords(role)
        for skill in offered
    )


def match_quality(score: float) -> str:
    """Categorical label for a numeric skill score."""
    for label, threshold in SKILL_QUALITY_THRESHOLDS:
        if score >= threshold:
            return label
    return "none"


@dataclass(frozen=True)
class SkillScore:
    score: int
    quality: str
    details: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.quality != "none"


def score_skills(
    candidate: CandidateRequest,
    skills: Sequence[str],
    technologies: Sequence[str],
) -> SkillScore:
    """
    Score how well an interviewer's skills cover the candidate's request.

    Category points (at most 30): 15 per category the interviewer lists
    verbatim; otherwise 10 per category whose keywords overlap the
    interviewer's skills, at most 20. Technology points (at most 30): 10 per
    exact technology, 5 per partial overlap.
    """
    skills = [str(s) for s in skills or ()]
    offered = skills + [str(t) for t in technologies or ()]
    details: list[str] = []

    category_score = 0
    categories = list(candidate.skill_categories) or [candidate.target_role]
    exact = [c for c in categories if c in skills]
    if exact:
        category_score = min(30, 15 * len(exact))
        details.append(f"Exact skill category match: {', '.join(exact)}")
    else:
        related = []
        for category in categories:
            keywords = ROLE_KEYWORDS.get(_ROLE_LOOKUP.get(category.lower(), ""), ())
            hits = [k for k in keywords if any(_terms_match(k, o) for o in offered)]
            if hits:
                related.append(f"{category} ({', '.join(hits)})")
        if related:
            category_score = min(20, 10 * len(related))
            details.append(f"Related skill matches: {'; '.join(related)}")

    tech_score = 0
    exact_tech, partial_tech = [], []
    lowered = {o.lower() for o in offered}
    for skill in candidate.specific_skills:
        if skill.lower() in lowered:
            exact_tech.append(skill)
            tech_score += 10
        elif any(_terms_match(skill, o) for o in offered):
            partial_tech.append(skill)
            tech_score += 5
    tech_score = min(30, tech_score)
    if exact_tech:
        details.append(f"Exact technology matches: {', '.join(exact_tech)}")
    if partial_tech:
        details.append(f"Related technology matches: {', '.join(partial_tech)}")

    total = category_score + tech_score
    return SkillScore(score=total, quality=match_quality(total), details=tuple(details))


def parse_experience(value: Any) -> int:
    """Years of experience from free text such as ``"3 years"``, ``"0-1"`` or ``"5+"``."""
    if value is None or value == "":
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value)
    numbers = re.findall(r"\d+", text)
    if numbers:
        return int(numbers[0])
    lowered = text.lower()
    if "entry" in lowered or "fresher" in lowered:
        return 1
    return 2


def score_experience(candidate_years: int, interviewer_years: Optional[int]) -> int:
    if not interviewer_years or interviewer_years <= 0:
        return 0
    diff = interviewer_years - candidate_years
    if diff == 0:
        return 25
    if diff > 0:
        if diff == 1:
            return 20
        if diff <= 8:
            return 25
        return 15
    gap = -diff
    if gap == 1:
        return 25
    if gap == 2:
        return 20
    if gap == 3:
        return 15
    return 10


@dataclass(frozen=True)
class ParsedTimeSlot:
    day: str
    hour: int
    minute: int
    date: date


def parse_time_slot(value: Any, tz_name: Optional[str] = None) -> Optional[ParsedTimeSlot]:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        logger.warning("Could not parse candidate time slot %r", value)
        return None
    local = to_local(parsed, tz_name)
    return ParsedTimeSlot(
        day=weekday_name(local.date()),
        hour=local.hour,
        minute=local.minute,
        date=local.date(),
    )


def _as_availability(availability: AvailabilityInput) -> WeeklyAvailability:
    if isinstance(availability, WeeklyAvailability):
        return availability
    return WeeklyAvailability.parse(availability)


def check_time_slot_match(
    candidate_time_slot: Any,
    availability: AvailabilityInput,
    *,
    tz_name: Optional[str] = None,
) -> bool:
    """
    True when the interviewer can start within an hour of the requested hour.

    A declared range ``[start, end)`` offers start hours from ``start`` to the
    last hour that still leaves a full hour before ``end``; the request
    matches when its hour lies within one hour of that span on the same
    weekday.
    """
    if not candidate_time_slot:
        return False
    weekly = _as_availability(availability)
    if not weekly:
        return False
    slot = parse_time_slot(candidate_time_slot, tz_name)
    if slot is None:
        return False

    for time_range in weekly.for_day(slot.day):
        first_hour = time_range.start // 60
        last_hour = max(first_hour, (time_range.end - 60) // 60)
        if first_hour - TIME_SLOT_TOLERANCE_HOURS <= slot.hour <= last_hour + TIME_SLOT_TOLERANCE_HOURS:
            return True
    return False


def get_alternative_time_slots(
    availability: AvailabilityInput,
    limit: int = MAX_ALTERNATIVE_SLOTS,
) -> list[str]:
    alternatives = []
    for day, time_range in _as_availability(availability):
        if len(alternatives) >= limit:
            break
        alternatives.append(f"{day} {time_range.label}")
    return alternatives


def evaluate_interviewer(
    candidate: CandidateRequest,
    interviewer: InterviewerProfile,
    *,
    tz_name: Optional[str] = None,
) -> MatchResult:
    result = MatchResult(interviewer=interviewer)

    skill = score_skills(candidate, interviewer.skills, interviewer.technologies)
    result.skill_match = match_role(candidate.target_role, interviewer.skills, interviewer.technologies)
    result.skill_quality = skill.quality
    result.score += skill.score
    if result.skill_match:
        result.reasons.append("Skills match")

    experience_points = score_experience(parse_experience(candidate.experience), interviewer.experience_years)
    result.score += experience_points
    result.experience_match = experience_points >= 10
    if result.experience_match:
        result.reasons.append("Appropriate experience level")

    result.time_match = check_time_slot_match(candidate.time_slot, interviewer.availability, tz_name=tz_name)
    if result.time_match:
        result.score += TIME_MATCH_POINTS
        result.reasons.append("Time available")
    else:
        result.alternative_time_slots = get_alternative_time_slots(interviewer.availability)
        if result.alternative_time_slots:
            result.score += ALTERNATIVES_POINTS
    return result


def rank_interviewers(
    candidate: CandidateRequest,
    interviewers: Iterable[InterviewerProfile],
    *,
    tz_name: Optional[str] = None,
) -> list[MatchResult]:
    scored = [evaluate_interviewer(candidate, i, tz_name=tz_name) for i in interviewers]
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored


def select_best_match(ranked: Sequence[MatchResult]) -> Optional[MatchResult]:
    """Pick the interviewer to book from a list already sorted by score."""
    if not ranked:
        return None
    best = ranked[0]
    if (best.skill_match or best.score >= GOOD_MATCH_SCORE) and best.score >= MINIMUM_MATCH_SCORE:
        return best
    for candidate in ranked:
        if candidate.score < MINIMUM_MATCH_SCORE:
            continue
        if candidate.skill_match or candidate.experience_match or candidate.alternative_time_slots:
            return candidate
    return None


__all__ = [
    "ROLE_KEYWORDS",
    "role_keywords",
    "match_role",
    "match_quality",
    "SkillScore",
    "score_skills",
    "parse_experience",
    "score_experience",
    "ParsedTimeSlot",
    "parse_time_slot",
    "check_time_slot_match",
    "get_alternative_time_slots",
    "evaluate_interviewer",
    "rank_interviewers",
    "select_best_match",
]
