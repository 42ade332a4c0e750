"""FastAPI application wiring for the functions API."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from mockmatch.apps.functions.routers import (
    integrations,
    matching,
    payments,
    reservations,
    resume_reviews,
    system,
)
from mockmatch.core.db import init_models
from mockmatch.core.error_handler import setup_global_exception_handler
from mockmatch.core.logging import configure_logging
from mockmatch.core.settings import Settings, get_settings
from mockmatch.domain.errors import InterviewAlreadyMatchedError, PaymentStatusTransitionError
from mockmatch.services.cleanup import CleanupService
from mockmatch.services.notifications import WebhookClient
from mockmatch.services.payment_watcher import PaymentStatusWatcher
from mockmatch.services.realtime import ChangeFeedProtocol, InMemoryChangeFeed, RealtimeManager, RedisChangeFeed

configure_logging()
request_logger = logging.getLogger("mockmatch.requests")
logger = logging.getLogger(__name__)


def _build_change_feed(settings: Settings) -> ChangeFeedProtocol:
    if settings.realtime_backend == "redis":
        logger.info("Realtime change feed: redis")
        return RedisChangeFeed(Redis.from_url(settings.redis_url))
    logger.info("Realtime change feed: in-memory")
    return InMemoryChangeFeed()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, start the cleanup sweep, and tear everything down on exit."""
    setup_global_exception_handler()
    settings = get_settings()
    logger.info("Starting MockMatch functions API (%s)...", settings.environment)

    await init_models()
    if settings.cleanup_enabled:
        app.state.cleanup.start(settings.cleanup_interval_minutes)

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        app.state.cleanup.stop()
        await app.state.payment_watcher.shutdown()
        await app.state.realtime.remove_all_channels()
        await app.state.change_feed.close()
        await app.state.sheets_client.close()
        await app.state.automation_client.close()
        logger.info("Application shut down complete")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        return JSONResponse(status_code=400, content={"detail": "Invalid request body", "errors": errors})

    @app.exception_handler(PaymentStatusTransitionError)
    async def transition_error(request: Request, exc: PaymentStatusTransitionError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InterviewAlreadyMatchedError)
    async def already_matched(request: Request, exc: InterviewAlreadyMatchedError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="MockMatch Functions", lifespan=lifespan)

    feed = _build_change_feed(settings)
    realtime = RealtimeManager(feed)
    app.state.change_feed = feed
    app.state.realtime = realtime
    app.state.payment_watcher = PaymentStatusWatcher(
        realtime,
        poll_interval=settings.payment_poll_interval_seconds,
        timeout=settings.payment_poll_timeout_seconds,
    )
    app.state.cleanup = CleanupService()
    app.state.sheets_client = WebhookClient(settings.sheets_webhook_url)
    app.state.automation_client = WebhookClient(settings.automation_webhook_url)

    app.include_router(system.router)
    app.include_router(reservations.router)
    app.include_router(payments.router)
    app.include_router(matching.router)
    app.include_router(resume_reviews.router)
    app.include_router(integrations.router)
    _register_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        request_logger.info(
            "HTTP %s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]
