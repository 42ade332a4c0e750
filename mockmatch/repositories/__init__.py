"""Repository implementations for domain models."""

from .coupon import CouponRepository
from .interviewer import InterviewerRepository, ProfileRepository
from .payment import InterviewRepository, PaymentSessionRepository
from .resume_review import ResumeReviewRepository
from .time_block import TimeBlockRepository

__all__ = [
    "CouponRepository",
    "InterviewerRepository",
    "ProfileRepository",
    "InterviewRepository",
    "PaymentSessionRepository",
    "ResumeReviewRepository",
    "TimeBlockRepository",
]
