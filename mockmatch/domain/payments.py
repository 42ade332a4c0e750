"""Payment session state rules.

Status moves only ``pending -> successful | failed``. ``interview_matched``
is an independent flag that flips once, from a successful unmatched session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from mockmatch.domain.errors import InterviewAlreadyMatchedError, PaymentStatusTransitionError
from mockmatch.domain.models import PaymentSession, PaymentStatus

TERMINAL_STATUSES = frozenset({PaymentStatus.SUCCESSFUL, PaymentStatus.FAILED})

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: TERMINAL_STATUSES,
    PaymentStatus.SUCCESSFUL: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}

ORDER_ID_PREFIX = "ORDER_"

WEBHOOK_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
WEBHOOK_FAILED = "PAYMENT_FAILED_WEBHOOK"
WEBHOOK_USER_DROPPED = "PAYMENT_USER_DROPPED_WEBHOOK"

_GATEWAY_STATUS_MAP = {
    "success": PaymentStatus.SUCCESSFUL,
    "successful": PaymentStatus.SUCCESSFUL,
    "paid": PaymentStatus.SUCCESSFUL,
    "completed": PaymentStatus.SUCCESSFUL,
    WEBHOOK_SUCCESS.lower(): PaymentStatus.SUCCESSFUL,
    "failed": PaymentStatus.FAILED,
    "failure": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "user_dropped": PaymentStatus.FAILED,
    WEBHOOK_FAILED.lower(): PaymentStatus.FAILED,
    WEBHOOK_USER_DROPPED.lower(): PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING,
    "active": PaymentStatus.PENDING,
}


def is_terminal(status: Optional[str]) -> bool:
    return (status or "").strip().lower() in TERMINAL_STATUSES


def enforce_payment_transition(current: str, target: str) -> str:
    """Return ``target`` when the move is allowed; same-status writes are no-ops."""
    current_norm = (current or PaymentStatus.PENDING).strip().lower()
    target_norm = (target or "").strip().lower()
    if current_norm == target_norm:
        return target_norm
    if target_norm not in _ALLOWED_TRANSITIONS.get(current_norm, frozenset()):
        raise PaymentStatusTransitionError(current_norm, target_norm)
    return target_norm


def apply_status(session: PaymentSession, target: str) -> bool:
    """Move ``session`` to ``target``; returns True when the row changed."""
    new_status = enforce_payment_transition(session.status, target)
    if new_status == session.status:
        return False
    session.status = new_status
    return True


def mark_interview_matched(session: PaymentSession) -> None:
    if session.interview_matched:
        raise InterviewAlreadyMatchedError(session.id)
    if session.status != PaymentStatus.SUCCESSFUL:
        raise PaymentStatusTransitionError(session.status, "matched")
    session.interview_matched = True


def normalize_gateway_status(value: Optional[str]) -> Optional[str]:
    """Map a gateway status or webhook type to ``pending``/``successful``/``failed``."""
    if not value:
        return None
    return _GATEWAY_STATUS_MAP.get(str(value).strip().lower())


def session_id_from_order_id(order_id: Optional[str]) -> Optional[str]:
    if not order_id:
        return None
    text = str(order_id).strip()
    if text.startswith(ORDER_ID_PREFIX):
        text = text[len(ORDER_ID_PREFIX):]
    return text or None


@dataclass(frozen=True)
class GatewayEvent:
    session_id: str
    status: Optional[str]
    payment_id: Optional[str] = None
    event_type: Optional[str] = None


def parse_gateway_event(payload: Mapping[str, Any]) -> Optional[GatewayEvent]:
    """
    Extract session id and normalized status from a gateway webhook body.

    Accepts the flat form ``{"type", "data": {"order_id", "payment_id"}}``
    as well as the nested ``data.order`` / ``data.payment`` form.
    """
    data = payload.get("data") or {}
    if not isinstance(data, Mapping):
        return None
    order = data.get("order") if isinstance(data.get("order"), Mapping) else {}
    payment = data.get("payment") if isinstance(data.get("payment"), Mapping) else {}

    order_id = data.get("order_id") or order.get("order_id") or payload.get("order_id")
    session_id = session_id_from_order_id(order_id)
    if session_id is None:
        return None

    event_type = payload.get("type")
    status = normalize_gateway_status(event_type)
    if status is None or status == PaymentStatus.PENDING:
        status = normalize_gateway_status(
            data.get("payment_status") or payment.get("payment_status") or data.get("order_status")
        )
    payment_id = data.get("payment_id") or payment.get("cf_payment_id") or payment.get("payment_id")
    return GatewayEvent(
        session_id=session_id,
        status=status,
        payment_id=str(payment_id) if payment_id is not None else None,
        event_type=event_type,
    )
