"""Logging wrappers for tasks that run detached on the event loop.

Change-feed readers, channel expiry and payment watches are started with
``safe_background_task`` so their failures end up in the log instead of in
"Task exception was never retrieved" warnings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Iterable

logger = logging.getLogger(__name__)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    message = context.get("message") or "Unhandled exception in event loop"
    exception = context.get("exception")
    if exception is not None:
        logger.error("Event loop error: %s", message, exc_info=exception)
    else:
        logger.error("Event loop error: %s (%s)", message, context)


def setup_global_exception_handler() -> None:
    """Route unhandled loop exceptions to the log. Must run inside the loop."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running event loop; exception handler not installed")
        return
    loop.set_exception_handler(_log_loop_exception)


def safe_background_task(task_name: str, task_coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
    """Run ``task_coro`` as a named task. Cancellation resolves to ``None``; errors are logged and re-raised."""

    async def runner() -> Any:
        try:
            return await task_coro
        except asyncio.CancelledError:
            logger.debug("Background task %s cancelled", task_name)
            return None
        except Exception:
            logger.exception("Background task %s failed", task_name)
            raise

    return asyncio.create_task(runner(), name=task_name)


class GracefulShutdown:
    """Cancel a set of tasks and wait at most ``timeout`` seconds for them to finish."""

    def __init__(self, tasks: Iterable[asyncio.Task] = (), *, timeout: float = 10.0):
        self.timeout = timeout
        self.tasks: list[asyncio.Task] = list(tasks)

    async def shutdown(self) -> None:
        pending = [task for task in self.tasks if not task.done()]
        self.tasks.clear()
        if not pending:
            return
        logger.info("Cancelling %d background tasks", len(pending))
        for task in pending:
            task.cancel()
        try:
            await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("%d background tasks still running after %.1fs", len(pending), self.timeout)


__all__ = ["setup_global_exception_handler", "safe_background_task", "GracefulShutdown"]
