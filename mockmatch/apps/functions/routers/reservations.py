import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.apps.functions.schemas import (
    AvailableSlotsPayload,
    ConvertReservationPayload,
    ReleaseReservationPayload,
    ReserveSlotPayload,
    TimeBlockOut,
)
from mockmatch.core.dependencies import get_async_session
from mockmatch.core.metrics import RESERVATIONS_TOTAL
from mockmatch.core.settings import get_settings
from mockmatch.domain.availability import get_available_time_slots
from mockmatch.domain.errors import InvalidTimeSlotError, ReservationNotFoundError, SlotUnavailableError
from mockmatch.domain.plans import plan_duration
from mockmatch.domain.reservations import (
    convert_temporary_to_permanent,
    create_temporary_reservation,
    release_temporary_reservation,
)
from mockmatch.repositories import InterviewerRepository

router = APIRouter(prefix="/functions", tags=["reservations"])
logger = logging.getLogger(__name__)


@router.post("/convert-temporary-reservation")
async def convert_temporary_reservation(
    payload: ConvertReservationPayload,
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.reservation_id or not payload.interview_id:
        raise HTTPException(status_code=400, detail="Missing required fields: reservationId and interviewId")
    try:
        block = await convert_temporary_to_permanent(session, payload.reservation_id, payload.interview_id)
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    RESERVATIONS_TOTAL.labels(event="converted").inc()
    return {
        "success": True,
        "message": "Temporary reservation converted to permanent booking",
        "reservation": TimeBlockOut.model_validate(block).model_dump(mode="json"),
    }


@router.post("/reserve-time-slot", status_code=status.HTTP_201_CREATED)
async def reserve_time_slot(
    payload: ReserveSlotPayload,
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.interviewer_id or not payload.time_slot:
        raise HTTPException(status_code=400, detail="Missing required fields: interviewerId and timeSlot")
    if (await InterviewerRepository(session).get(payload.interviewer_id)).unwrap_or(None) is None:
        raise HTTPException(status_code=404, detail="Interviewer not found")
    settings = get_settings()
    try:
        block = await create_temporary_reservation(
            session,
            payload.interviewer_id,
            payload.time_slot,
            payload.user_id,
            duration_minutes=plan_duration(payload.plan_id),
            hold_minutes=settings.temporary_hold_minutes,
        )
    except InvalidTimeSlotError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SlotUnavailableError as exc:
        RESERVATIONS_TOTAL.labels(event="conflict").inc()
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    RESERVATIONS_TOTAL.labels(event="created").inc()
    return {
        "success": True,
        "reservation": TimeBlockOut.model_validate(block).model_dump(mode="json"),
    }


@router.post("/release-reservation")
async def release_reservation(
    payload: ReleaseReservationPayload,
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.reservation_id:
        raise HTTPException(status_code=400, detail="Missing required field: reservationId")
    released = await release_temporary_reservation(session, payload.reservation_id)
    if released:
        RESERVATIONS_TOTAL.labels(event="released").inc()
    return {"success": True, "released": released}


@router.post("/available-slots")
async def available_slots(
    payload: AvailableSlotsPayload,
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.interviewer_id:
        raise HTTPException(status_code=400, detail="Missing required field: interviewerId")
    interviewer = (await InterviewerRepository(session).get(payload.interviewer_id)).unwrap_or(None)
    if interviewer is None:
        raise HTTPException(status_code=404, detail="Interviewer not found")
    settings = get_settings()
    slots = await get_available_time_slots(
        session,
        interviewer.id,
        interviewer.time_slots,
        payload.preferred_date,
        days=settings.availability_window_days,
        limit=settings.max_suggested_slots,
        slot_minutes=payload.slot_minutes,
    )
    return {"interviewer_id": interviewer.id, "slots": [slot.as_dict() for slot in slots]}
