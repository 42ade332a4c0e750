from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.result import Failure
from mockmatch.core.time_utils import utcnow
from mockmatch.domain.models import PaymentSession
from mockmatch.domain.payments import apply_status, mark_interview_matched
from mockmatch.domain.reservations import release_temporary_reservation
from mockmatch.repositories.payment import PaymentSessionRepository
from mockmatch.services.realtime import ChangeFeedProtocol

logger = logging.getLogger(__name__)

PAYMENT_SESSIONS_TABLE = "payment_sessions"


async def create_payment_session(
    session: AsyncSession,
    *,
    user_id: Optional[str],
    amount: float,
    candidate_data: dict[str, Any],
    currency: str = "INR",
) -> PaymentSession:
    record = PaymentSession(
        user_id=user_id,
        amount=amount,
        currency=currency,
        candidate_data=candidate_data,
    )
    saved = (await PaymentSessionRepository(session).add(record)).unwrap()
    saved.gateway_order_id = f"ORDER_{saved.id}"
    await session.commit()
    return saved


async def publish_change(feed: Optional[ChangeFeedProtocol], payment: PaymentSession) -> None:
    if feed is None:
        return
    try:
        await feed.publish(PAYMENT_SESSIONS_TABLE, payment.as_change_record())
    except Exception:
        logger.exception("Could not publish change for payment session %s", payment.id)


async def record_payment_status(
    session: AsyncSession,
    session_id: str,
    status: str,
    *,
    payment_id: Optional[str] = None,
    feed: Optional[ChangeFeedProtocol] = None,
) -> Optional[PaymentSession]:
    """
    Apply a gateway status to a payment session and notify subscribers.

    Returns ``None`` for an unknown session. Raises
    PaymentStatusTransitionError when the session is already terminal with
    a different status.
    """
    repo = PaymentSessionRepository(session)
    result = await repo.get(session_id)
    if isinstance(result, Failure):
        logger.warning("Payment update for unknown session %s: %s", session_id, result.error)
        return None
    payment = result.unwrap()
    changed = apply_status(payment, status)
    if payment_id:
        payment.gateway_payment_id = payment_id
    if not changed and not payment_id:
        return payment
    payment.updated_at = utcnow()
    (await repo.save(payment)).unwrap()
    await session.commit()
    if changed:
        logger.info("Payment session %s is now %s", session_id, payment.status)
        await publish_change(feed, payment)
    return payment


async def mark_session_matched(
    session: AsyncSession,
    payment: PaymentSession,
    *,
    feed: Optional[ChangeFeedProtocol] = None,
) -> PaymentSession:
    """Flip ``interview_matched``; the caller's pending changes are committed with it."""
    mark_interview_matched(payment)
    payment.updated_at = utcnow()
    await session.commit()
    await publish_change(feed, payment)
    return payment


async def release_held_slot(session: AsyncSession, payment: PaymentSession) -> bool:
    """Drop the checkout hold a failed payment was made for, if the session names one."""
    data = payment.candidate_data or {}
    reservation_id = data.get("reservationId") or data.get("reservation_id")
    if not reservation_id:
        return False
    released = await release_temporary_reservation(session, str(reservation_id))
    if released:
        logger.info("Released reservation %s after failed payment %s", reservation_id, payment.id)
    return released
