"""Endpoint tests for the functions API."""

import dataclasses
import json

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from mockmatch.apps.functions import security
from mockmatch.apps.functions.app import create_app
from mockmatch.apps.functions.routers import resume_reviews
from mockmatch.core.auth import create_access_token
from mockmatch.core.db import async_session
from mockmatch.core.settings import get_settings
from mockmatch.domain.models import (
    Coupon,
    Interviewer,
    InterviewerTimeBlock,
    PaymentSession,
    Profile,
    ResumeReview,
)

SLOT = "Monday, 18/08/2025 10:00-11:00"


class RecordingClient:
    configured = True

    def __init__(self):
        self.sent = []

    async def post_json(self, payload):
        self.sent.append(payload)
        return {"ok": True}

    async def close(self):
        pass


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


async def _add(*rows):
    async with async_session() as session:
        session.add_all(rows)
        await session.commit()
    return rows[0] if len(rows) == 1 else rows


async def _interviewer(**fields) -> Interviewer:
    values = {
        "full_name": "Arjun Menon",
        "email": "arjun@example.com",
        "company": "Acme",
        "position": "Staff Engineer",
        "skills": ["Python Backend Developer"],
        "experience_years": 5,
        "time_slots": {"Monday": [{"start": "10:00", "end": "12:00"}]},
    }
    values.update(fields)
    return await _add(Interviewer(**values))


def _bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.mark.asyncio
async def test_health_reports_background_state():
    app = create_app()
    async with _client(app) as client:
        resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "realtime_channels": 0, "cleanup_running": False}


@pytest.mark.asyncio
async def test_reserve_convert_and_release_flow():
    interviewer = await _interviewer()
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/reserve-time-slot",
            json={"interviewerId": interviewer.id, "timeSlot": SLOT, "userId": "u1"},
        )
        assert resp.status_code == 201
        reservation = resp.json()["reservation"]
        assert reservation["is_temporary"] is True
        assert (reservation["start_time"], reservation["end_time"]) == ("10:00", "11:00")

        resp = await client.post(
            "/functions/reserve-time-slot",
            json={"interviewerId": interviewer.id, "timeSlot": "Monday, 18/08/2025 10:30-11:30", "userId": "u2"},
        )
        assert resp.status_code == 409

        resp = await client.post(
            "/functions/reserve-time-slot",
            json={"interviewerId": interviewer.id, "timeSlot": "whenever", "userId": "u2"},
        )
        assert resp.status_code == 400

        resp = await client.post(
            "/functions/reserve-time-slot",
            json={"interviewerId": "does-not-exist", "timeSlot": "Monday, 18/08/2025 11:00-12:00", "userId": "u3"},
        )
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Interviewer not found"
        async with async_session() as session:
            assert await session.scalar(
                select(func.count()).select_from(InterviewerTimeBlock).where(
                    InterviewerTimeBlock.interviewer_id == "does-not-exist"
                )
            ) == 0

        resp = await client.post("/functions/convert-temporary-reservation", json={})
        assert resp.status_code == 400

        resp = await client.post(
            "/functions/convert-temporary-reservation",
            json={"reservationId": "missing", "interviewId": "iv-1"},
        )
        assert resp.status_code == 404

        resp = await client.post(
            "/functions/convert-temporary-reservation",
            json={"reservationId": reservation["id"], "interviewId": "iv-1"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["reservation"]["block_reason"] == "interview_scheduled"
        assert body["reservation"]["interview_id"] == "iv-1"

        resp = await client.post("/functions/release-reservation", json={"reservationId": reservation["id"]})
        assert resp.json() == {"success": True, "released": False}


@pytest.mark.asyncio
async def test_available_slots_endpoint():
    interviewer = await _interviewer()
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/available-slots",
            json={"interviewerId": interviewer.id, "preferredDate": "2025-08-18", "slotMinutes": 60},
        )
        assert resp.status_code == 200
        slots = resp.json()["slots"]
        assert slots[0]["display_text"] == "Monday, 18/08/2025 10:00-11:00"
        assert len(slots) == 3

        resp = await client.post("/functions/available-slots", json={"interviewerId": "nobody"})
        assert resp.status_code == 404

        resp = await client.post(
            "/functions/available-slots", json={"interviewerId": interviewer.id, "slotMinutes": 5}
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid request body"


@pytest.mark.asyncio
async def test_resume_review_complete_requires_admin(monkeypatch):
    admin, member, review = await _add(
        Profile(id="admin-1", role="admin", email="ops@example.com"),
        Profile(id="member-1", role="candidate"),
        ResumeReview(id="rev-1", user_email="sam@example.com", user_name="Sam", status="in_progress"),
    )
    sent = []

    async def fake_send(review, subject=None):
        sent.append((review.id, subject))
        return "email-1"

    monkeypatch.setattr(resume_reviews, "send_review_ready_email", fake_send)
    payload = {"reviewId": review.id, "reportUrl": "https://files.test/rev-1.pdf"}

    app = create_app()
    async with _client(app) as client:
        resp = await client.post("/functions/resume-review-complete", json=payload)
        assert resp.status_code == 401

        resp = await client.post("/functions/resume-review-complete", json=payload, headers=_bearer(member.id))
        assert resp.status_code == 403

        resp = await client.post(
            "/functions/resume-review-complete",
            json={"reviewId": "missing", "reportUrl": "https://x"},
            headers=_bearer(admin.id),
        )
        assert resp.status_code == 404

        resp = await client.post("/functions/resume-review-complete", json=payload, headers=_bearer(admin.id))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "emailId": "email-1"}

        resp = await client.post("/functions/resume-review-complete", json=payload, headers=_bearer(admin.id))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Review already completed; no email sent."

    assert sent == [("rev-1", None)]
    async with async_session() as session:
        stored = await session.get(ResumeReview, "rev-1")
        assert stored.status == "completed"
        assert stored.report_url == "https://files.test/rev-1.pdf"
        assert stored.email_sent_at is not None


@pytest.mark.asyncio
async def test_resume_review_without_email_is_left_untouched():
    admin, review = await _add(
        Profile(id="admin-1", role="admin"),
        ResumeReview(id="rev-2", user_email=None, status="in_progress"),
    )
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/resume-review-complete",
            json={"reviewId": review.id, "reportUrl": "https://files.test/rev-2.pdf"},
            headers=_bearer(admin.id),
        )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Review has no email address"
    async with async_session() as session:
        stored = await session.get(ResumeReview, "rev-2")
        assert stored.status == "in_progress"
        assert stored.report_url is None


@pytest.mark.asyncio
async def test_resume_review_webhook_filters_and_forwards():
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/resume-review-webhook", json={"type": "UPDATE", "record": {"id": "r1", "status": "completed"}}
        )
        assert resp.json() == {"success": True, "message": "Skipped - status not pending"}

        resp = await client.post(
            "/functions/resume-review-webhook", json={"type": "INSERT", "new": {"id": "r1", "status": "pending"}}
        )
        assert resp.status_code == 200
        assert "not configured" in resp.json()["message"]

        recorder = RecordingClient()
        app.state.automation_client = recorder
        resp = await client.post(
            "/functions/resume-review-webhook",
            json={"type": "INSERT", "record": {"id": "r1", "status": "pending", "user_email": "sam@example.com"}},
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Webhook forwarded"
        assert recorder.sent[0]["id"] == "r1"
        assert recorder.sent[0]["user_email"] == "sam@example.com"


@pytest.mark.asyncio
async def test_sync_to_sheets():
    app = create_app()
    async with _client(app) as client:
        resp = await client.post("/functions/sync-to-sheets", json={"type": "lead", "data": {"name": "Sam"}})
        assert resp.json()["message"] == "Data received but sheets webhook URL not configured"

        recorder = RecordingClient()
        app.state.sheets_client = recorder
        resp = await client.post("/functions/sync-to-sheets", json={"type": "lead", "data": {"name": "Sam"}})
        assert resp.json() == {"success": True, "message": "Data synced to sheets"}
        assert recorder.sent[0]["type"] == "lead"
        assert recorder.sent[0]["name"] == "Sam"


@pytest.mark.asyncio
async def test_payment_session_lifecycle_over_webhooks():
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/create-payment-session",
            json={"planId": "essential", "userId": "u1", "candidateData": {"targetRole": "Frontend Developer"}},
        )
        assert resp.status_code == 201
        created = resp.json()
        session_id = created["session"]["id"]
        order_id = created["session"]["gateway_order_id"]
        assert created["session"]["amount"] == 499
        assert created["quote"]["final_price"] == 499

        resp = await client.post(
            "/functions/payment-webhook", json={"type": "PAYMENT_PENDING", "data": {"order_id": order_id}}
        )
        assert resp.json()["status"] == "received"

        resp = await client.post(
            "/functions/payment-webhook",
            json={"type": "PAYMENT_SUCCESS_WEBHOOK", "data": {"order_id": order_id, "payment_id": "pay-1"}},
        )
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "Payment webhook processed successfully"}

        resp = await client.post(
            "/functions/payment-webhook",
            json={"type": "PAYMENT_FAILED_WEBHOOK", "data": {"order_id": order_id}},
        )
        assert resp.status_code == 409

        resp = await client.get(f"/functions/payment-status/{session_id}", params={"wait": "true"})
        assert resp.json() == {"session_id": session_id, "status": "successful", "timed_out": False}

        resp = await client.post(
            "/functions/payment-webhook",
            json={"type": "PAYMENT_SUCCESS_WEBHOOK", "data": {"order_id": "ORDER_missing"}},
        )
        assert resp.status_code == 404

        resp = await client.post(
            "/functions/payment-webhook", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400

        resp = await client.get("/functions/payment-status/missing")
        assert resp.status_code == 404

    async with async_session() as session:
        stored = await session.get(PaymentSession, session_id)
        assert stored.status == "successful"
        assert stored.gateway_payment_id == "pay-1"


@pytest.mark.asyncio
async def test_failed_payment_releases_the_hold():
    interviewer = await _interviewer()
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/reserve-time-slot",
            json={"interviewerId": interviewer.id, "timeSlot": SLOT, "userId": "u1"},
        )
        reservation_id = resp.json()["reservation"]["id"]

        resp = await client.post(
            "/functions/create-payment-session",
            json={"planId": "professional", "userId": "u1", "candidateData": {"reservationId": reservation_id}},
        )
        order_id = resp.json()["session"]["gateway_order_id"]

        resp = await client.post(
            "/functions/payment-webhook",
            json={"type": "PAYMENT_FAILED_WEBHOOK", "data": {"order_id": order_id}},
        )
        assert resp.json()["status"] == "failed"

    async with async_session() as session:
        assert await session.get(InterviewerTimeBlock, reservation_id) is None


@pytest.mark.asyncio
async def test_payment_webhook_signature(monkeypatch):
    signed = dataclasses.replace(get_settings(), payment_webhook_secret="s3cret")
    monkeypatch.setattr(security, "get_settings", lambda: signed)
    body = json.dumps({"type": "PAYMENT_PENDING", "data": {"order_id": "ORDER_x"}}).encode()

    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/payment-webhook", content=body, headers={"content-type": "application/json"}
        )
        assert resp.status_code == 401

        headers = {
            "content-type": "application/json",
            "x-webhook-timestamp": "1724000000",
            "x-webhook-signature": security.compute_webhook_signature("s3cret", "1724000000", body),
        }
        resp = await client.post("/functions/payment-webhook", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "received"


@pytest.mark.asyncio
async def test_auto_book_interview_after_payment():
    interviewer = await _interviewer()
    payment = await _add(
        PaymentSession(
            user_id="u1",
            amount=999,
            status="successful",
            candidate_data={
                "targetRole": "Python Backend Developer",
                "experience": "3",
                "selectedTimeSlot": SLOT,
                "selectedPlan": "professional",
                "userId": "u1",
            },
        )
    )
    pending = await _add(PaymentSession(user_id="u1", amount=999, status="pending", candidate_data={}))

    app = create_app()
    async with _client(app) as client:
        resp = await client.post("/functions/auto-book-interview", json={"user_id": "u1"})
        assert resp.status_code == 400

        resp = await client.post(
            "/functions/auto-book-interview", json={"payment_session_id": pending.id, "user_id": "u1"}
        )
        assert resp.status_code == 404

        resp = await client.post(
            "/functions/auto-book-interview", json={"payment_session_id": payment.id, "user_id": "u1"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "booked"
        assert body["interview_matched"] is True
        assert body["match"]["interviewer_id"] == interviewer.id

        resp = await client.post(
            "/functions/auto-book-interview", json={"paymentSessionId": payment.id, "userId": "u1"}
        )
        assert resp.json()["status"] == "already_matched"
        assert resp.json()["interview_matched"] is True


@pytest.mark.asyncio
async def test_find_matching_interviewer_endpoint():
    app = create_app()
    async with _client(app) as client:
        resp = await client.post("/functions/find-matching-interviewer", json={"experience": "3"})
        assert resp.status_code == 400

        resp = await client.post(
            "/functions/find-matching-interviewer",
            json={"targetRole": "Python Backend Developer", "experience": "3", "timeSlot": "2025-08-18T10:00:00"},
        )
        assert resp.status_code == 404

        interviewer = await _interviewer()
        resp = await client.post(
            "/functions/find-matching-interviewer",
            json={"targetRole": "Python Backend Developer", "experience": "3", "timeSlot": "2025-08-18T10:00:00"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["interviewer_id"] == interviewer.id
        assert body["interviewer_email"] == "arjun@example.com"
        assert body["company"] == "Acme"
        assert body["time_match"] is True
        assert body["score"] == 65


@pytest.mark.asyncio
async def test_quote_price_and_coupon_listing():
    await _add(
        Coupon(code="SAVE10", discount_type="percentage", discount_value=10, status="active", plan_type="all"),
    )
    app = create_app()
    async with _client(app) as client:
        resp = await client.post(
            "/functions/quote-price",
            json={"planId": "professional", "couponCode": "save10", "addOns": [{"key": "priority_support"}]},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["final_price"] == 1048
        assert body["discount"]["discount_amount"] == 100
        assert "coupon_error" not in body

        resp = await client.post("/functions/quote-price", json={"planId": "essential", "couponCode": "BOGUS"})
        assert resp.json()["coupon_error"] == "Invalid or expired coupon code"
        assert resp.json()["final_price"] == 499

        resp = await client.post(
            "/functions/quote-price", json={"planId": "essential", "addOns": [{"key": "priority_support"}]}
        )
        assert resp.status_code == 400

        resp = await client.get("/functions/coupons", params={"plan_id": "essential"})
        assert resp.json()["coupons"][0]["discount"] == "10% OFF"
