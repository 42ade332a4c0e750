"""Outbound notifications: review-ready emails and JSON webhooks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

import aiohttp
import resend
from jinja2 import Environment, BaseLoader

from mockmatch.core.metrics import NOTIFICATIONS_SENT
from mockmatch.core.settings import get_settings
from mockmatch.domain.models import ResumeReview

logger = logging.getLogger(__name__)

DEFAULT_REVIEW_SUBJECT = "Your Resume Review is Ready"

_env = Environment(loader=BaseLoader(), autoescape=True)

_REVIEW_READY_TEMPLATE = _env.from_string(
    """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Your resume review is ready</h2>
  <p>Hi {{ name }},</p>
  <p>We have finished reviewing your resume{% if target_role %} for the {{ target_role }} role{% endif %}.
     Open the report below to see the feedback.</p>
  <p><a href="{{ review_link }}" style="display: inline-block; padding: 12px 24px; background: #2563eb; color: #fff; text-decoration: none; border-radius: 6px;">View your review</a></p>
  {% if report_url %}<p>You can also download the report directly: <a href="{{ report_url }}">{{ report_url }}</a></p>{% endif %}
  <p>Good luck with your applications!</p>
</div>"""
)

# Columns of a resume review row forwarded to the automation webhook.
RESUME_REVIEW_FIELDS = (
    "id",
    "user_email",
    "user_name",
    "target_role",
    "experience_years",
    "resume_url",
    "status",
    "submitted_at",
    "utm_source",
    "referrer",
)


class EmailDeliveryError(RuntimeError):
    pass


class WebhookDeliveryError(RuntimeError):
    def __init__(self, message: str, *, status: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


def review_link(review: ResumeReview, base_url: Optional[str] = None) -> str:
    origin = (base_url or get_settings().public_base_url).rstrip("/")
    query = urlencode({"reviewId": review.id, "email": review.user_email})
    return f"{origin}/resume-review?{query}"


def render_review_ready_email(review: ResumeReview, *, base_url: Optional[str] = None) -> str:
    return _REVIEW_READY_TEMPLATE.render(
        name=review.user_name or "there",
        target_role=review.target_role,
        review_link=review_link(review, base_url),
        report_url=review.report_url,
    )


async def send_email(to: str, subject: str, html: str, *, from_address: Optional[str] = None) -> Dict[str, Any]:
    """Send one HTML email through Resend and return the provider response."""
    settings = get_settings()
    if not settings.resend_api_key:
        NOTIFICATIONS_SENT.labels(channel="email", outcome="unconfigured").inc()
        raise EmailDeliveryError("Email service not configured: RESEND_API_KEY missing")

    resend.api_key = settings.resend_api_key
    params = {
        "from": from_address or settings.email_from_address,
        "to": [to],
        "subject": subject,
        "html": html,
    }
    try:
        response = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as exc:
        logger.error("Email send to %s failed: %s", to, exc, exc_info=True)
        NOTIFICATIONS_SENT.labels(channel="email", outcome="error").inc()
        raise EmailDeliveryError(f"Failed to send email: {exc}") from exc
    NOTIFICATIONS_SENT.labels(channel="email", outcome="ok").inc()
    logger.info("Email sent to %s", to)
    return dict(response) if isinstance(response, Mapping) else {"id": getattr(response, "id", None)}


async def send_review_ready_email(review: ResumeReview, subject: Optional[str] = None) -> Optional[str]:
    """Email the candidate a link to their finished review; returns the provider message id."""
    html = render_review_ready_email(review)
    response = await send_email(review.user_email, subject or DEFAULT_REVIEW_SUBJECT, html)
    return response.get("id")


class WebhookClient:
    """POSTs JSON to an external URL, one shared aiohttp session per client."""

    def __init__(self, url: Optional[str], *, timeout: float = 10.0) -> None:
        self._url = (url or "").strip()
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self._url)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._timeout))
        return self._session

    async def post_json(self, payload: Dict[str, Any]) -> Any:
        if not self._url:
            raise WebhookDeliveryError("Webhook URL is not configured")
        session = self._get_session()
        try:
            async with session.post(self._url, json=payload) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise WebhookDeliveryError(
                        f"Webhook responded with {resp.status}", status=resp.status, body=text
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError:
                    return {"raw": text}
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise WebhookDeliveryError(str(exc)) from exc

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_change_record(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Row data from a database-change payload: ``record``, ``new`` on INSERT, or the payload itself."""
    if isinstance(payload.get("record"), Mapping):
        return dict(payload["record"])
    if payload.get("type") == "INSERT" and isinstance(payload.get("new"), Mapping):
        return dict(payload["new"])
    return dict(payload)


def resume_review_webhook_payload(record: Mapping[str, Any]) -> Dict[str, Any]:
    data = {field: record.get(field) for field in RESUME_REVIEW_FIELDS}
    data["timestamp"] = _timestamp()
    return data


def sheets_payload(record_type: Optional[str], data: Mapping[str, Any]) -> Dict[str, Any]:
    return {"timestamp": _timestamp(), "type": record_type, **data}


async def forward(client: WebhookClient, payload: Dict[str, Any], *, channel: str) -> Any:
    try:
        response = await client.post_json(payload)
    except WebhookDeliveryError:
        NOTIFICATIONS_SENT.labels(channel=channel, outcome="error").inc()
        logger.exception("Forwarding to %s failed", channel)
        raise
    NOTIFICATIONS_SENT.labels(channel=channel, outcome="ok").inc()
    return response


__all__ = [
    "DEFAULT_REVIEW_SUBJECT",
    "EmailDeliveryError",
    "WebhookDeliveryError",
    "WebhookClient",
    "extract_change_record",
    "forward",
    "render_review_ready_email",
    "resume_review_webhook_payload",
    "review_link",
    "send_email",
    "send_review_ready_email",
    "sheets_payload",
]
