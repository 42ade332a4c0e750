"""Authentication helpers for the functions API."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.auth import InvalidTokenError, decode_access_token, extract_bearer_token
from mockmatch.core.dependencies import get_async_session
from mockmatch.core.settings import get_settings
from mockmatch.domain.models import Profile, ProfileRole
from mockmatch.repositories import ProfileRepository

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


def require_bearer_claims(request: Request) -> dict[str, Any]:
    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        claims = decode_access_token(token)
    except InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized") from exc
    if not claims.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return claims


async def require_admin(
    claims: dict[str, Any] = Depends(require_bearer_claims),
    session: AsyncSession = Depends(get_async_session),
) -> Profile:
    """The caller's profile, when it carries the admin role."""
    profile: Optional[Profile] = (await ProfileRepository(session).get(str(claims["sub"]))).unwrap_or(None)
    if profile is None or profile.role != ProfileRole.ADMIN:
        logger.warning("Non-admin user %s called an admin function", claims["sub"])
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return profile


def compute_webhook_signature(secret: str, timestamp: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(request: Request, body: bytes) -> None:
    """Check the gateway signature when a webhook secret is configured; 401 otherwise."""
    secret = get_settings().payment_webhook_secret
    if not secret:
        return
    signature = request.headers.get(SIGNATURE_HEADER, "")
    timestamp = request.headers.get(TIMESTAMP_HEADER, "")
    expected = compute_webhook_signature(secret, timestamp, body)
    if not signature or not hmac.compare_digest(signature, expected):
        logger.warning("Payment webhook signature mismatch")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")


__all__ = [
    "require_bearer_claims",
    "require_admin",
    "compute_webhook_signature",
    "verify_webhook_signature",
]
