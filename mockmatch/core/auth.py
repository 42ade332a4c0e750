"""Bearer token helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from mockmatch.core.settings import get_settings

ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    pass


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT.

    Args:
        data: Claims; ``sub`` and ``role`` are what the API looks at.
        expires_delta: Lifetime, 30 minutes when omitted.
    """
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode.update({"exp": expire, "aud": settings.auth_jwt_audience})
    return jwt.encode(to_encode, settings.auth_jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise InvalidTokenError("Token verification is not configured")
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[ALGORITHM],
            audience=settings.auth_jwt_audience,
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc


def extract_bearer_token(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def role_from_claims(claims: dict[str, Any]) -> Optional[str]:
    """Role from ``role`` or ``app_metadata.role``, lower-cased."""
    role = claims.get("role")
    metadata = claims.get("app_metadata")
    if isinstance(metadata, dict) and metadata.get("role"):
        role = metadata["role"]
    return str(role).lower() if role else None


__all__ = [
    "InvalidTokenError",
    "create_access_token",
    "decode_access_token",
    "extract_bearer_token",
    "role_from_claims",
]
