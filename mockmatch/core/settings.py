from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from mockmatch.core.env import load_env


DEFAULT_USER_DATA_DIR = Path.home() / ".mockmatch" / "data"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    environment: str  # development, production, staging
    data_dir: Path
    database_url_async: str
    sql_echo: bool
    log_level: str
    log_json: bool
    log_file: str
    timezone: str
    redis_url: str
    realtime_backend: str  # memory, redis
    cleanup_enabled: bool
    cleanup_interval_minutes: int
    payment_poll_interval_seconds: float
    payment_poll_timeout_seconds: float
    availability_window_days: int
    max_suggested_slots: int
    temporary_hold_minutes: int
    resend_api_key: str
    email_from_address: str
    public_base_url: str
    sheets_webhook_url: str
    automation_webhook_url: str
    payment_webhook_secret: str
    auth_jwt_secret: str
    auth_jwt_audience: str
    db_pool_size: int
    db_max_overflow: int
    db_pool_timeout: int
    db_pool_recycle: int


def _get_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_float(name: str, default: float, *, minimum: Optional[float] = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw.strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


load_env()


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir).expanduser()
    return DEFAULT_USER_DATA_DIR


def _normalize_sqlite_url(url: str) -> str:
    if url.startswith("sqlite") and not url.startswith("sqlite+aiosqlite"):
        path = url.split("///", maxsplit=1)[-1]
        return f"sqlite+aiosqlite:///{path}"
    return url


def _normalize_postgres_url(url: str) -> str:
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv("ENVIRONMENT", "development").strip().lower()
    if environment not in {"development", "production", "staging"}:
        environment = "development"

    data_dir = _default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    raw_db_url = _get_str("DATABASE_URL")
    if not raw_db_url:
        if environment == "production":
            raise ValueError("DATABASE_URL must be set in production")
        raw_db_url = f"sqlite+aiosqlite:///{data_dir / 'mockmatch.db'}"
    async_url = _normalize_postgres_url(_normalize_sqlite_url(raw_db_url))

    redis_url = _get_str("REDIS_URL")
    realtime_backend = _get_str("REALTIME_BACKEND", "memory").lower() or "memory"
    if realtime_backend not in {"memory", "redis"}:
        realtime_backend = "memory"
    if realtime_backend == "redis" and not redis_url:
        logger.warning("REALTIME_BACKEND=redis without REDIS_URL, falling back to in-memory feed")
        realtime_backend = "memory"

    log_level = _get_str("LOG_LEVEL", "INFO").upper() or "INFO"
    log_file = _get_str("LOG_FILE")
    if not log_file:
        log_dir = data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = str(log_dir / "app.log")

    auth_jwt_secret = _get_str("AUTH_JWT_SECRET")
    if environment == "production" and len(auth_jwt_secret) < 32:
        raise ValueError(
            f"AUTH_JWT_SECRET must be at least 32 characters in production (current: {len(auth_jwt_secret)})"
        )

    return Settings(
        environment=environment,
        data_dir=data_dir,
        database_url_async=async_url,
        sql_echo=_get_bool("SQL_ECHO", default=False),
        log_level=log_level,
        log_json=_get_bool("LOG_JSON", default=False),
        log_file=log_file,
        timezone=_get_str("TZ", "Asia/Kolkata") or "Asia/Kolkata",
        redis_url=redis_url,
        realtime_backend=realtime_backend,
        cleanup_enabled=_get_bool("CLEANUP_ENABLED", default=True),
        cleanup_interval_minutes=_get_int("CLEANUP_INTERVAL_MINUTES", 5, minimum=1),
        payment_poll_interval_seconds=_get_float("PAYMENT_POLL_INTERVAL_SECONDS", 10.0, minimum=0.01),
        payment_poll_timeout_seconds=_get_float("PAYMENT_POLL_TIMEOUT_SECONDS", 180.0, minimum=0.01),
        availability_window_days=_get_int("AVAILABILITY_WINDOW_DAYS", 14, minimum=1),
        max_suggested_slots=_get_int("MAX_SUGGESTED_SLOTS", 3, minimum=1),
        temporary_hold_minutes=_get_int("TEMPORARY_HOLD_MINUTES", 10, minimum=1),
        resend_api_key=_get_str("RESEND_API_KEY"),
        email_from_address=_get_str("EMAIL_FROM_ADDRESS", "MockMatch <reports@mockmatch.app>"),
        public_base_url=_get_str("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        sheets_webhook_url=_get_str("GOOGLE_SHEETS_WEBHOOK_URL"),
        automation_webhook_url=_get_str("AUTOMATION_WEBHOOK_URL"),
        payment_webhook_secret=_get_str("PAYMENT_WEBHOOK_SECRET"),
        auth_jwt_secret=auth_jwt_secret,
        auth_jwt_audience=_get_str("AUTH_JWT_AUDIENCE", "authenticated"),
        db_pool_size=_get_int("DB_POOL_SIZE", 10, minimum=1),
        db_max_overflow=_get_int("DB_MAX_OVERFLOW", 10, minimum=0),
        db_pool_timeout=_get_int("DB_POOL_TIMEOUT", 30, minimum=1),
        db_pool_recycle=_get_int("DB_POOL_RECYCLE", 3600, minimum=60),
    )
