import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.apps.functions.schemas import ResumeReviewCompletePayload
from mockmatch.apps.functions.security import require_admin
from mockmatch.core.dependencies import get_async_session, get_automation_client
from mockmatch.core.time_utils import utcnow
from mockmatch.domain.models import ReviewStatus
from mockmatch.repositories import ResumeReviewRepository
from mockmatch.services.notifications import (
    EmailDeliveryError,
    WebhookClient,
    WebhookDeliveryError,
    extract_change_record,
    forward,
    resume_review_webhook_payload,
    send_review_ready_email,
)

router = APIRouter(prefix="/functions", tags=["resume-reviews"])
logger = logging.getLogger(__name__)


@router.post("/resume-review-complete", dependencies=[Depends(require_admin)])
async def resume_review_complete(
    payload: ResumeReviewCompletePayload,
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.review_id or not payload.report_url:
        raise HTTPException(status_code=400, detail="Missing required fields: reviewId and reportUrl")

    repo = ResumeReviewRepository(session)
    review = (await repo.get(payload.review_id)).unwrap_or(None)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")

    should_send_email = review.status != ReviewStatus.COMPLETED or review.email_sent_at is None
    if should_send_email and not review.user_email:
        raise HTTPException(status_code=400, detail="Review has no email address")

    now = utcnow()
    review.report_url = payload.report_url
    review.status = ReviewStatus.COMPLETED
    review.report_generated_at = now
    review.updated_at = now
    (await repo.save(review)).unwrap()
    await session.commit()

    if not should_send_email:
        return {"success": True, "message": "Review already completed; no email sent."}

    try:
        email_id = await send_review_ready_email(review, payload.email_subject)
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    review.email_sent_at = utcnow()
    await session.commit()
    logger.info("Resume review %s completed and emailed", review.id)
    return {"success": True, "emailId": email_id}


@router.post("/resume-review-webhook")
async def resume_review_webhook(
    payload: dict[str, Any] = Body(...),
    client: WebhookClient = Depends(get_automation_client),
):
    record = extract_change_record(payload)
    if record.get("status") != ReviewStatus.PENDING:
        logger.info("Skipping resume review %s with status %s", record.get("id"), record.get("status"))
        return {"success": True, "message": "Skipped - status not pending"}
    if not client.configured:
        logger.info("Automation webhook URL not configured; resume review %s not forwarded", record.get("id"))
        return {"success": True, "message": "Automation webhook URL not configured; nothing forwarded"}

    try:
        response = await forward(client, resume_review_webhook_payload(record), channel="automation")
    except WebhookDeliveryError as exc:
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to call automation webhook", "status": exc.status, "message": exc.body or str(exc)},
        ) from exc
    return {"success": True, "message": "Webhook forwarded", "response": response}
