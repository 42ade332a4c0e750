import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileRole:
    CANDIDATE = "candidate"
    INTERVIEWER = "interviewer"
    ADMIN = "admin"


class BlockReason:
    MANUAL = "manual"
    INTERVIEW_SCHEDULED = "interview_scheduled"
    TEMPORARY_RESERVATION = "temporary_reservation"


class PaymentStatus:
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


class ReviewStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CouponStatus:
    ACTIVE = "active"
    STOPPED = "stopped"


class DiscountType:
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    role: Mapped[str] = mapped_column(String(32), default=ProfileRole.CANDIDATE, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    @validates("role")
    def _normalize_role(self, _key, value: Optional[str]) -> str:
        return (value or ProfileRole.CANDIDATE).strip().lower()

    def __repr__(self) -> str:
        return f"<Profile {self.id} {self.role}>"


class Interviewer(Base):
    __tablename__ = "interviewers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    experience_years: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    skills: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    technologies: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    # weekday name -> list of {"start": "HH:MM", "end": "HH:MM"} or "HH:MM"
    time_slots: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    is_eligible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Interviewer {self.id} {self.full_name}>"


class InterviewerTimeBlock(Base):
    __tablename__ = "interviewer_time_blocks"
    __table_args__ = (
        CheckConstraint(
            "NOT is_temporary OR expires_at IS NOT NULL",
            name="ck_time_block_temporary_has_expiry",
        ),
        CheckConstraint("start_time < end_time", name="ck_time_block_range"),
        Index("ix_time_blocks_interviewer_date", "interviewer_id", "blocked_date"),
        Index("ix_time_blocks_temporary_expiry", "is_temporary", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    interviewer_id: Mapped[str] = mapped_column(
        ForeignKey("interviewers.id", ondelete="CASCADE"), nullable=False
    )
    blocked_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    block_reason: Mapped[str] = mapped_column(String(32), default=BlockReason.MANUAL, nullable=False)
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reserved_by_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    interview_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("start_time", "end_time")
    def _normalize_clock(self, _key, value: str) -> str:
        hours, _, minutes = str(value).strip().partition(":")
        return f"{int(hours):02d}:{int(minutes or 0):02d}"

    def __repr__(self) -> str:
        return f"<TimeBlock {self.interviewer_id} {self.blocked_date} {self.start_time}-{self.end_time} {self.block_reason}>"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("code", name="uq_coupon_code"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    discount_type: Mapped[str] = mapped_column(String(16), default=DiscountType.PERCENTAGE, nullable=False)
    discount_value: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=CouponStatus.ACTIVE, nullable=False)
    expiring_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    plan_type: Mapped[str] = mapped_column(String(32), default="all", nullable=False)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    @validates("code")
    def _normalize_code(self, _key, value: str) -> str:
        code = (value or "").strip().upper()
        if not code:
            raise ValueError("Coupon code cannot be empty")
        return code

    def __repr__(self) -> str:
        return f"<Coupon {self.code} {self.discount_type}={self.discount_value}>"


class PaymentSession(Base):
    __tablename__ = "payment_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    candidate_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), default="INR", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=PaymentStatus.PENDING, nullable=False)
    interview_matched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @validates("status")
    def _normalize_status(self, _key, value: Optional[str]) -> str:
        return (value or PaymentStatus.PENDING).strip().lower()

    def as_change_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "interview_matched": self.interview_matched,
            "amount": self.amount,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<PaymentSession {self.id} {self.status} matched={self.interview_matched}>"


class Interview(Base):
    __tablename__ = "interviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    interviewer_id: Mapped[str] = mapped_column(ForeignKey("interviewers.id", ondelete="CASCADE"), nullable=False)
    interviewer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    candidate_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    candidate_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    candidate_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    target_role: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    experience: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    plan_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    resume_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="scheduled", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Interview {self.id} {self.scheduled_time.isoformat()} {self.status}>"


class ResumeReview(Base):
    __tablename__ = "resume_reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    target_role: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    experience_years: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resume_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default=ReviewStatus.PENDING, nullable=False)
    report_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    report_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    utm_source: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ResumeReview {self.id} {self.status}>"
