"""Matching a paid candidate to an interviewer and booking the interview."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.metrics import MATCH_ATTEMPTS, MATCH_SCORE, RESERVATIONS_TOTAL
from mockmatch.core.result import Failure
from mockmatch.core.settings import get_settings
from mockmatch.domain.errors import NoMatchingInterviewerError, PaymentSessionNotFoundError
from mockmatch.domain.matching import rank_interviewers, select_best_match
from mockmatch.domain.models import BlockReason, Interview, PaymentSession, PaymentStatus
from mockmatch.domain.plans import plan_duration
from mockmatch.domain.reservations import (
    SlotRequest,
    convert_reservation_for_slot,
    new_time_block,
    parse_slot_request,
)
from mockmatch.domain.schemas import CandidateRequest, InterviewerProfile, MatchResult, TimeRange
from mockmatch.repositories import InterviewerRepository, InterviewRepository, PaymentSessionRepository, TimeBlockRepository
from mockmatch.services.payments import mark_session_matched
from mockmatch.services.realtime import ChangeFeedProtocol

logger = logging.getLogger(__name__)


class BookingStatus:
    BOOKED = "booked"
    ALREADY_MATCHED = "already_matched"
    NO_TIME_SLOT = "no_time_slot"
    NO_MATCH = "no_match"
    SLOT_UNAVAILABLE = "slot_unavailable"


@dataclass
class BookingOutcome:
    status: str
    interview: Optional[Interview] = None
    match: Optional[MatchResult] = None
    converted_reservations: int = 0

    @property
    def booked(self) -> bool:
        return self.status == BookingStatus.BOOKED


async def rank_eligible_interviewers(
    session: AsyncSession,
    candidate: CandidateRequest,
    *,
    tz_name: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> list[MatchResult]:
    rows = (await InterviewerRepository(session).list_eligible(exclude_id=exclude_id)).unwrap()
    profiles = [InterviewerProfile.from_model(row) for row in rows]
    return rank_interviewers(candidate, profiles, tz_name=tz_name or get_settings().timezone)


async def find_matching_interviewer(
    session: AsyncSession,
    candidate: CandidateRequest,
    *,
    tz_name: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> MatchResult:
    """Best eligible interviewer for ``candidate``; raises NoMatchingInterviewerError."""
    ranked = await rank_eligible_interviewers(session, candidate, tz_name=tz_name, exclude_id=exclude_id)
    best = select_best_match(ranked)
    if best is None:
        MATCH_ATTEMPTS.labels(outcome="no_match").inc()
        logger.info("No interviewer for %s among %d eligible", candidate.target_role, len(ranked))
        raise NoMatchingInterviewerError(candidate.target_role)
    MATCH_ATTEMPTS.labels(outcome="matched").inc()
    MATCH_SCORE.observe(best.score)
    logger.info(
        "Matched %s to interviewer %s (score %d, reasons: %s)",
        candidate.target_role,
        best.interviewer.id,
        best.score,
        ", ".join(best.reasons) or "none",
    )
    return best


def _local_start(request: SlotRequest) -> datetime:
    return datetime.combine(request.blocked_date, time(request.range.start // 60, request.range.start % 60))


def _scheduled_at(request: SlotRequest, tz_name: str) -> datetime:
    return _local_start(request).replace(tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)


async def _slot_is_free_for(
    session: AsyncSession,
    interviewer_id: str,
    request: SlotRequest,
    user_id: Optional[str],
) -> bool:
    result = await TimeBlockRepository(session).list_for_date(interviewer_id, request.blocked_date)
    if isinstance(result, Failure):
        logger.error("Could not check blocks for %s: %s", interviewer_id, result.error)
        return False
    for row in result.unwrap():
        if row.is_temporary and user_id and row.reserved_by_user_id == user_id:
            continue
        if TimeRange.from_strings(row.start_time, row.end_time).overlaps(request.range):
            return False
    return True


async def _load_paid_session(session: AsyncSession, payment_session_id: str, user_id: Optional[str]) -> PaymentSession:
    result = await PaymentSessionRepository(session).get(payment_session_id)
    if isinstance(result, Failure):
        raise PaymentSessionNotFoundError(payment_session_id)
    payment = result.unwrap()
    if user_id and payment.user_id != user_id:
        raise PaymentSessionNotFoundError(payment_session_id)
    if payment.status != PaymentStatus.SUCCESSFUL:
        raise PaymentSessionNotFoundError(payment_session_id, "is not completed")
    return payment


async def book_interview_for_session(
    session: AsyncSession,
    payment_session_id: str,
    *,
    user_id: Optional[str] = None,
    feed: Optional[ChangeFeedProtocol] = None,
    tz_name: Optional[str] = None,
) -> BookingOutcome:
    """
    Book the interview a successful payment session paid for.

    The candidate's chosen slot must match the selected interviewer's weekly
    availability and be free apart from the candidate's own checkout hold.
    Holds on the slot become permanent; without one a permanent block is
    created. The session is marked matched last, in the same commit.
    """
    tz_name = tz_name or get_settings().timezone
    payment = await _load_paid_session(session, payment_session_id, user_id)
    if payment.interview_matched:
        return BookingOutcome(BookingStatus.ALREADY_MATCHED)

    candidate = CandidateRequest.from_payload(payment.candidate_data or {})
    slot_text = payment.candidate_data.get("selectedTimeSlot") or candidate.time_slot
    if not slot_text:
        return BookingOutcome(BookingStatus.NO_TIME_SLOT)

    duration = plan_duration(candidate.plan_id)
    request = parse_slot_request(slot_text, duration)
    candidate = replace(candidate, time_slot=_local_start(request).isoformat())

    try:
        match = await find_matching_interviewer(session, candidate, tz_name=tz_name)
    except NoMatchingInterviewerError:
        return BookingOutcome(BookingStatus.NO_MATCH)

    holder = candidate.user_id or payment.user_id
    if not match.time_match or not await _slot_is_free_for(session, match.interviewer.id, request, holder):
        return BookingOutcome(BookingStatus.SLOT_UNAVAILABLE, match=match)

    interview = Interview(
        interviewer_id=match.interviewer.id,
        interviewer_email=match.interviewer.email,
        candidate_id=holder,
        candidate_name=candidate.name,
        candidate_email=candidate.email,
        target_role=", ".join(candidate.skill_categories) or candidate.target_role,
        experience=candidate.experience,
        scheduled_time=_scheduled_at(request, tz_name),
        duration_minutes=duration,
        plan_type=candidate.plan_id,
        resume_url=candidate.resume_url,
        payment_session_id=payment.id,
    )
    interview = (await InterviewRepository(session).add(interview)).unwrap()

    converted = await convert_reservation_for_slot(
        session,
        match.interviewer.id,
        request,
        interview.id,
        user_id=holder,
    )
    if converted:
        RESERVATIONS_TOTAL.labels(event="converted").inc(converted)
    else:
        block = new_time_block(
            match.interviewer.id,
            request.blocked_date,
            request.range,
            reason=BlockReason.INTERVIEW_SCHEDULED,
            interview_id=interview.id,
        )
        (await TimeBlockRepository(session).add(block)).unwrap()

    await mark_session_matched(session, payment, feed=feed)
    logger.info(
        "Interview %s booked with %s on %s %s for payment session %s",
        interview.id,
        match.interviewer.id,
        request.blocked_date,
        request.range.label,
        payment.id,
    )
    return BookingOutcome(BookingStatus.BOOKED, interview=interview, match=match, converted_reservations=converted)


__all__ = [
    "BookingOutcome",
    "BookingStatus",
    "book_interview_for_session",
    "find_matching_interviewer",
    "rank_eligible_interviewers",
]
