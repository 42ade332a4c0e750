import dataclasses
import json
import logging
import os
from datetime import datetime, timedelta, timezone

import pytest

from mockmatch.core.auth import (
    InvalidTokenError,
    create_access_token,
    decode_access_token,
    extract_bearer_token,
    role_from_claims,
)
from mockmatch.core.env import load_env
from mockmatch.core.logging import JsonFormatter, build_logging_config
from mockmatch.core.result import Failure, NotFoundError, Success
from mockmatch.core.settings import get_settings
from mockmatch.core.time_utils import (
    ensure_aware,
    normalize_weekday,
    parse_clock,
    parse_iso_datetime,
    parse_timezone,
    to_local,
)


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_normalise_database_urls(monkeypatch, fresh_settings):
    monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@db:5432/mockmatch")
    assert get_settings().database_url_async == "postgresql+asyncpg://user:pw@db:5432/mockmatch"

    get_settings.cache_clear()
    monkeypatch.setenv("DATABASE_URL", "sqlite:////tmp/mm.db")
    assert get_settings().database_url_async == "sqlite+aiosqlite:////tmp/mm.db"


def test_settings_fall_back_on_bad_values(monkeypatch, fresh_settings):
    monkeypatch.setenv("REALTIME_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("CLEANUP_INTERVAL_MINUTES", "0")
    monkeypatch.setenv("PAYMENT_POLL_INTERVAL_SECONDS", "soon")
    settings = get_settings()
    assert settings.realtime_backend == "memory"
    assert settings.cleanup_interval_minutes == 5
    assert settings.payment_poll_interval_seconds == 10.0


def test_production_requires_long_jwt_secret(monkeypatch, fresh_settings):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("AUTH_JWT_SECRET", "short")
    with pytest.raises(ValueError, match="AUTH_JWT_SECRET"):
        get_settings()


def test_env_file_does_not_override_shell(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text('# comment\nexport MM_FROM_FILE="loaded"\nMM_SHELL=file\nbroken-line\n', encoding="utf-8")
    monkeypatch.setenv("MM_SHELL", "shell")
    monkeypatch.delenv("MM_FROM_FILE", raising=False)

    load_env(env_file)

    assert os.environ["MM_FROM_FILE"] == "loaded"
    assert os.environ["MM_SHELL"] == "shell"
    monkeypatch.delenv("MM_FROM_FILE")


def test_access_token_round_trip():
    token = create_access_token({"sub": "user-1", "role": "admin"})
    claims = decode_access_token(token)
    assert claims["sub"] == "user-1"
    assert claims["aud"] == "authenticated"


def test_expired_or_tampered_tokens_are_rejected():
    expired = create_access_token({"sub": "user-1"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(InvalidTokenError):
        decode_access_token(expired)
    with pytest.raises(InvalidTokenError):
        decode_access_token("not-a-token")


def test_bearer_header_parsing_and_roles():
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("bearer  abc ") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token(None) is None
    assert role_from_claims({"role": "Admin"}) == "admin"
    assert role_from_claims({"role": "authenticated", "app_metadata": {"role": "interviewer"}}) == "interviewer"
    assert role_from_claims({}) is None


def test_json_formatter_carries_extra_fields():
    record = logging.makeLogRecord(
        {"name": "mockmatch.test", "levelname": "INFO", "msg": "booked %s", "args": ("iv-1",), "session_id": "s1"}
    )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "booked iv-1"
    assert payload["session_id"] == "s1"
    assert payload["level"] == "INFO"


def test_result_helpers():
    assert Success(3).unwrap() == 3
    missing = Failure(NotFoundError(entity_type="Coupon", entity_id="X"))
    assert missing.is_failure()
    assert missing.unwrap_or(None) is None
    with pytest.raises(RuntimeError):
        missing.unwrap()


def test_time_helpers():
    assert parse_timezone("asia/kolkata").key == "Asia/Kolkata"
    with pytest.raises(ValueError):
        parse_timezone("Mars/Base")
    assert parse_clock("9:05") == 545
    with pytest.raises(ValueError):
        parse_clock("24:30")
    assert normalize_weekday("mon") == "Monday"
    assert normalize_weekday("someday") is None

    parsed = parse_iso_datetime("2025-08-18T04:30:00Z")
    assert parsed == datetime(2025, 8, 18, 4, 30, tzinfo=timezone.utc)
    assert to_local(parsed, "Asia/Kolkata").hour == 10
    assert to_local(datetime(2025, 8, 18, 10, 0), "Asia/Kolkata").hour == 10
    assert ensure_aware(datetime(2025, 8, 18)).tzinfo == timezone.utc
    assert parse_iso_datetime("yesterday") is None


def test_logging_config_follows_settings(tmp_path):
    settings = get_settings()
    config = build_logging_config(dataclasses.replace(settings, log_file="", log_json=True, sql_echo=True))
    assert list(config["handlers"]) == ["console"]
    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "INFO"

    log_file = str(tmp_path / "app.log")
    config = build_logging_config(dataclasses.replace(settings, log_file=log_file, log_json=False, sql_echo=False))
    assert config["handlers"]["file"]["filename"] == log_file
    assert config["root"]["handlers"] == ["console", "file"]
    assert config["loggers"]["apscheduler"]["level"] == "WARNING"
