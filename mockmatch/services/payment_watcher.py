"""Wait for a payment session to reach a terminal status.

Two signals race: a change-feed subscription and a fixed-interval poll of
the row. The first terminal status wins, stops the other signal and fires
the callback once. A hard timeout ends the wait when neither arrives.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import AbstractAsyncContextManager
from typing import Awaitable, Callable, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from mockmatch.core.db import async_session
from mockmatch.core.error_handler import GracefulShutdown, safe_background_task
from mockmatch.core.metrics import PAYMENT_WATCH_OUTCOMES
from mockmatch.core.result import Failure
from mockmatch.domain.payments import is_terminal
from mockmatch.repositories.payment import PaymentSessionRepository
from mockmatch.services.payments import PAYMENT_SESSIONS_TABLE
from mockmatch.services.realtime import ChangeRecord, RealtimeManager

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], Union[Awaitable[None], None]]
SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 180.0


class PaymentStatusWatcher:
    def __init__(
        self,
        realtime: RealtimeManager,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session_factory: SessionFactory = async_session,
    ) -> None:
        self.realtime = realtime
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._session_factory = session_factory
        self._tasks: Dict[str, asyncio.Task] = {}

    async def fetch_status(self, session_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await PaymentSessionRepository(session).get(session_id)
        if isinstance(result, Failure):
            logger.warning("Payment status poll for %s failed: %s", session_id, result.error)
            return None
        return result.unwrap().status

    async def watch(self, session_id: str, on_status: Optional[StatusCallback] = None) -> Optional[str]:
        """
        Block until ``session_id`` is successful or failed, or the timeout passes.

        Returns the terminal status, or ``None`` on timeout. ``on_status`` is
        called at most once with ``(status, source)`` where source is
        ``"realtime"`` or ``"poll"``.
        """
        finished = asyncio.Event()
        outcome: Dict[str, str] = {}

        async def settle(status: Optional[str], source: str) -> None:
            if finished.is_set() or not is_terminal(status):
                return
            outcome["status"] = status
            outcome["source"] = source
            finished.set()
            logger.info("Payment session %s settled as %s via %s", session_id, status, source)

        async def on_change(record: ChangeRecord) -> None:
            await settle(record.get("status"), "realtime")

        async def poll() -> None:
            while not finished.is_set():
                try:
                    status = await self.fetch_status(session_id)
                except Exception:
                    logger.exception("Payment status poll for %s raised", session_id)
                    status = None
                await settle(status, "poll")
                if finished.is_set():
                    return
                await asyncio.sleep(self.poll_interval)

        channel = f"payment-status:{session_id}"
        await self.realtime.create_channel(
            channel,
            PAYMENT_SESSIONS_TABLE,
            on_change,
            record_filter=lambda record: record.get("id") == session_id,
            ttl_seconds=self.timeout + self.poll_interval,
        )
        poller = safe_background_task(f"payment-poll:{session_id}", poll())
        try:
            await asyncio.wait_for(finished.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Payment session %s still pending after %.0fs", session_id, self.timeout)
            PAYMENT_WATCH_OUTCOMES.labels(outcome="timeout").inc()
            return None
        finally:
            finished.set()
            poller.cancel()
            await asyncio.gather(poller, return_exceptions=True)
            await self.realtime.remove_channel(channel)

        status = outcome["status"]
        PAYMENT_WATCH_OUTCOMES.labels(outcome=status).inc()
        # both signals are stopped before the callback runs
        if on_status is not None:
            result = on_status(status, outcome["source"])
            if inspect.isawaitable(result):
                await result
        return status

    def start(self, session_id: str, on_status: Optional[StatusCallback] = None) -> asyncio.Task:
        """Run :meth:`watch` in the background; a second start for the same id replaces the first."""
        self.stop(session_id)
        task = safe_background_task(f"payment-watch:{session_id}", self.watch(session_id, on_status))
        self._tasks[session_id] = task
        task.add_done_callback(lambda t, sid=session_id: self._forget(sid, t))
        return task

    def _forget(self, session_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]

    def stop(self, session_id: str) -> bool:
        task = self._tasks.pop(session_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def is_watching(self, session_id: str) -> bool:
        return session_id in self._tasks

    async def shutdown(self) -> None:
        shutdown = GracefulShutdown(self._tasks.values(), timeout=5.0)
        self._tasks.clear()
        await shutdown.shutdown()
