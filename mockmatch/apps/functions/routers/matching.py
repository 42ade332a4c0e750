import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.apps.functions.schemas import QuotePayload
from mockmatch.core.dependencies import get_async_session
from mockmatch.domain.coupons import find_coupon, get_active_coupons, format_discount_text, quote_as_dict, quote_price
from mockmatch.domain.errors import NoMatchingInterviewerError
from mockmatch.domain.plans import AddOnSelection, selection_from_flags
from mockmatch.domain.schemas import CandidateRequest
from mockmatch.services.booking import find_matching_interviewer

router = APIRouter(prefix="/functions", tags=["matching"])
logger = logging.getLogger(__name__)


@router.post("/find-matching-interviewer")
async def find_matching(
    payload: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        candidate = CandidateRequest.from_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        match = await find_matching_interviewer(session, candidate)
    except NoMatchingInterviewerError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    interviewer = match.interviewer
    return {
        **match.as_dict(),
        "interviewer_email": interviewer.email,
        "company": interviewer.company,
        "position": interviewer.position,
        "experience_years": interviewer.experience_years,
    }


@router.post("/quote-price")
async def quote(
    payload: QuotePayload,
    session: AsyncSession = Depends(get_async_session),
):
    coupon = await find_coupon(session, payload.coupon_code, payload.plan_id)
    selections = [AddOnSelection(key=item.key, quantity=item.quantity) for item in payload.add_ons]
    selections += selection_from_flags(payload.add_on_flags)
    try:
        result = quote_price(payload.plan_id, coupon, selections)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    body = quote_as_dict(result)
    if payload.coupon_code and coupon is None:
        body["coupon_error"] = "Invalid or expired coupon code"
    return body


@router.get("/coupons")
async def list_coupons(plan_id: str | None = None, session: AsyncSession = Depends(get_async_session)):
    coupons = await get_active_coupons(session, plan_id)
    return {
        "coupons": [
            {
                "code": coupon.code,
                "discount": format_discount_text(coupon),
                "plan_type": coupon.plan_type,
                "expiring_on": coupon.expiring_on.isoformat() if coupon.expiring_on else None,
            }
            for coupon in coupons
        ]
    }
