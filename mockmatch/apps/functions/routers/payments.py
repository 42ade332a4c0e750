import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.apps.functions.schemas import AutoBookPayload, CreatePaymentSessionPayload, PaymentSessionOut
from mockmatch.apps.functions.security import verify_webhook_signature
from mockmatch.core.dependencies import get_async_session, get_change_feed, get_payment_watcher
from mockmatch.core.metrics import PAYMENT_EVENTS
from mockmatch.domain.coupons import find_coupon, quote_as_dict, quote_price
from mockmatch.domain.errors import PaymentSessionNotFoundError, PaymentStatusTransitionError
from mockmatch.domain.models import PaymentStatus
from mockmatch.domain.payments import parse_gateway_event
from mockmatch.domain.plans import AddOnSelection, selection_from_flags
from mockmatch.repositories import PaymentSessionRepository
from mockmatch.services.booking import BookingStatus, book_interview_for_session
from mockmatch.services.payment_watcher import PaymentStatusWatcher
from mockmatch.services.payments import create_payment_session, record_payment_status, release_held_slot

router = APIRouter(prefix="/functions", tags=["payments"])
logger = logging.getLogger(__name__)


@router.post("/create-payment-session", status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: CreatePaymentSessionPayload,
    session: AsyncSession = Depends(get_async_session),
):
    coupon = await find_coupon(session, payload.coupon_code, payload.plan_id)
    selections = [AddOnSelection(key=item.key, quantity=item.quantity) for item in payload.add_ons]
    selections += selection_from_flags(payload.add_on_flags)
    try:
        quote = quote_price(payload.plan_id, coupon, selections)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    candidate_data = dict(payload.candidate_data)
    candidate_data.setdefault("selectedPlan", payload.plan_id)
    record = await create_payment_session(
        session,
        user_id=payload.user_id,
        amount=quote.final_price,
        candidate_data=candidate_data,
    )
    return {
        "session": PaymentSessionOut.model_validate(record).model_dump(mode="json"),
        "quote": quote_as_dict(quote),
    }


@router.post("/payment-webhook")
async def payment_webhook(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
    feed=Depends(get_change_feed),
):
    body = await request.body()
    verify_webhook_signature(request, body)
    try:
        payload = json.loads(body or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    event = parse_gateway_event(payload)
    if event is None or event.status in (None, PaymentStatus.PENDING):
        logger.info("Payment webhook %s acknowledged without changes", payload.get("type"))
        return {"status": "received", "message": "Webhook received but not processed"}

    try:
        updated = await record_payment_status(
            session,
            event.session_id,
            event.status,
            payment_id=event.payment_id,
            feed=feed,
        )
    except PaymentStatusTransitionError as exc:
        logger.warning("Payment webhook for %s ignored: %s", event.session_id, exc)
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    if updated is None:
        raise HTTPException(status_code=404, detail="Payment session not found")

    PAYMENT_EVENTS.labels(status=updated.status).inc()
    if updated.status == PaymentStatus.FAILED:
        await release_held_slot(session, updated)
        return {"status": "failed", "message": "Payment failed webhook processed"}
    return {"status": "success", "message": "Payment webhook processed successfully"}


@router.get("/payment-status/{session_id}")
async def payment_status(
    session_id: str,
    wait: bool = False,
    session: AsyncSession = Depends(get_async_session),
    watcher: PaymentStatusWatcher = Depends(get_payment_watcher),
):
    record = (await PaymentSessionRepository(session).get(session_id)).unwrap_or(None)
    if record is None:
        raise HTTPException(status_code=404, detail="Payment session not found")
    await session.close()

    current = record.status
    timed_out = False
    if wait and current == PaymentStatus.PENDING:
        settled = await watcher.watch(session_id)
        timed_out = settled is None
        current = settled or current
    return {"session_id": session_id, "status": current, "timed_out": timed_out}


@router.post("/auto-book-interview")
async def auto_book_interview(
    payload: AutoBookPayload,
    session: AsyncSession = Depends(get_async_session),
    feed=Depends(get_change_feed),
):
    if not payload.payment_session_id or not payload.user_id:
        raise HTTPException(status_code=400, detail="Missing required parameters: payment_session_id and user_id")
    try:
        outcome = await book_interview_for_session(
            session,
            payload.payment_session_id,
            user_id=payload.user_id,
            feed=feed,
        )
    except PaymentSessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Payment session not found or not completed") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "status": outcome.status,
        "interview_matched": outcome.booked or outcome.status == BookingStatus.ALREADY_MATCHED,
        "interview_id": outcome.interview.id if outcome.interview else None,
        "match": outcome.match.as_dict() if outcome.match else None,
    }
