class PaymentStatusTransitionError(Exception):
    """Raised when a payment session is asked to move along a forbidden edge."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Payment status transition {current!r} -> {target!r} is not allowed")


class InterviewAlreadyMatchedError(Exception):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Payment session {session_id} is already matched to an interview")


class TemporaryBlockError(ValueError):
    """Raised when a temporary time block is created without an expiry."""


class SlotUnavailableError(Exception):
    def __init__(self, interviewer_id: str, slot_date, start_time: str, end_time: str):
        self.interviewer_id = interviewer_id
        self.slot_date = slot_date
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(
            f"Interviewer {interviewer_id} is not available on {slot_date} {start_time}-{end_time}"
        )


class ReservationNotFoundError(LookupError):
    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Temporary reservation {reservation_id} not found or already converted")


class InvalidTimeSlotError(ValueError):
    """Raised when a human readable slot string cannot be parsed."""


class NoMatchingInterviewerError(LookupError):
    def __init__(self, target_role: str):
        self.target_role = target_role
        super().__init__(f"No suitable interviewer found for role {target_role!r}")


class PaymentSessionNotFoundError(LookupError):
    def __init__(self, session_id: str, reason: str = "not found"):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Payment session {session_id} {reason}")


__all__ = [
    "PaymentStatusTransitionError",
    "InterviewAlreadyMatchedError",
    "TemporaryBlockError",
    "SlotUnavailableError",
    "ReservationNotFoundError",
    "InvalidTimeSlotError",
    "NoMatchingInterviewerError",
    "PaymentSessionNotFoundError",
]
