"""FastAPI dependencies for database access and shared services."""

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.db import new_async_session


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Provide one AsyncSession per request.

    Usage:
        @router.post("/functions/quote-price")
        async def quote(session: AsyncSession = Depends(get_async_session)):
            ...

    Rolls back when the handler raises and always closes the session.
    """
    session = new_async_session()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


def get_change_feed(request: Request):
    return request.app.state.change_feed


def get_payment_watcher(request: Request):
    return request.app.state.payment_watcher


def get_sheets_client(request: Request):
    return request.app.state.sheets_client


def get_automation_client(request: Request):
    return request.app.state.automation_client


__all__ = [
    "get_async_session",
    "get_change_feed",
    "get_payment_watcher",
    "get_sheets_client",
    "get_automation_client",
]
