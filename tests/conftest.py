import os
import tempfile
from pathlib import Path

import pytest
from fakeredis import aioredis as fakeredis_aioredis

_TEST_DIR = Path(tempfile.mkdtemp(prefix="mockmatch-tests-"))

TEST_ENV = {
    "ENVIRONMENT": "development",
    "DATA_DIR": str(_TEST_DIR),
    "DATABASE_URL": f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}",
    "LOG_FILE": str(_TEST_DIR / "logs" / "test.log"),
    "TZ": "Asia/Kolkata",
    "REDIS_URL": "",
    "REALTIME_BACKEND": "memory",
    "CLEANUP_ENABLED": "0",
    "RESEND_API_KEY": "",
    "GOOGLE_SHEETS_WEBHOOK_URL": "",
    "AUTOMATION_WEBHOOK_URL": "",
    "PAYMENT_WEBHOOK_SECRET": "",
    "PUBLIC_BASE_URL": "https://mockmatch.test",
    "AUTH_JWT_SECRET": "test-jwt-secret-0123456789abcdef0123456789",
    "AUTH_JWT_AUDIENCE": "authenticated",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from mockmatch.core.db import async_session, init_models  # noqa: E402
from mockmatch.domain.base import Base  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _set_test_env():
    """Force deterministic env for tests and reset cached settings."""
    for key, value in TEST_ENV.items():
        os.environ[key] = value

    from mockmatch.core import settings as settings_module

    settings_module.get_settings.cache_clear()
    yield
    settings_module.get_settings.cache_clear()


async def _wipe_db():
    async with async_session() as session:
        for table in reversed(Base.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()


@pytest.fixture(autouse=True)
async def _clean_database_between_tests(request):
    """Create missing tables and wipe rows before each test."""
    if "no_db_cleanup" in request.keywords:
        return
    await init_models()
    await _wipe_db()


@pytest.fixture
async def session():
    async with async_session() as db_session:
        yield db_session


@pytest.fixture
def fake_redis():
    return fakeredis_aioredis.FakeRedis()
