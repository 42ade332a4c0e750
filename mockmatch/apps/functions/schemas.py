from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Request bodies accept both the camelCase aliases and the field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ConvertReservationPayload(CamelModel):
    reservation_id: Optional[str] = Field(None, alias="reservationId")
    interview_id: Optional[str] = Field(None, alias="interviewId")


class ReserveSlotPayload(CamelModel):
    interviewer_id: Optional[str] = Field(None, alias="interviewerId")
    time_slot: Optional[str] = Field(None, alias="timeSlot")
    user_id: Optional[str] = Field(None, alias="userId")
    plan_id: Optional[str] = Field(None, alias="planId")


class ReleaseReservationPayload(CamelModel):
    reservation_id: Optional[str] = Field(None, alias="reservationId")


class AvailableSlotsPayload(CamelModel):
    interviewer_id: Optional[str] = Field(None, alias="interviewerId")
    preferred_date: Optional[str] = Field(None, alias="preferredDate")
    slot_minutes: Optional[int] = Field(None, alias="slotMinutes", ge=15, le=240)


class ResumeReviewCompletePayload(CamelModel):
    review_id: Optional[str] = Field(None, alias="reviewId")
    report_url: Optional[str] = Field(None, alias="reportUrl")
    email_subject: Optional[str] = Field(None, alias="emailSubject")


class SheetsSyncPayload(BaseModel):
    type: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class AddOnItem(BaseModel):
    key: str
    quantity: int = 1


class QuotePayload(CamelModel):
    plan_id: str = Field("essential", alias="planId")
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    add_ons: list[AddOnItem] = Field(default_factory=list, alias="addOns")
    add_on_flags: dict[str, bool] = Field(default_factory=dict, alias="addOnFlags")


class CreatePaymentSessionPayload(QuotePayload):
    user_id: Optional[str] = Field(None, alias="userId")
    candidate_data: dict[str, Any] = Field(default_factory=dict, alias="candidateData")


class AutoBookPayload(CamelModel):
    payment_session_id: Optional[str] = Field(None, alias="paymentSessionId")
    user_id: Optional[str] = Field(None, alias="userId")


class TimeBlockOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    interviewer_id: str
    blocked_date: date
    start_time: str
    end_time: str
    block_reason: str
    is_temporary: bool
    expires_at: Optional[datetime] = None
    reserved_by_user_id: Optional[str] = None
    interview_id: Optional[str] = None


class PaymentSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    interview_matched: bool
    amount: float
    currency: str
    gateway_order_id: Optional[str] = None
    updated_at: Optional[datetime] = None
