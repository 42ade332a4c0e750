"""Row change feed and named channel registry.

Writers publish ``(table, record)`` after committing a change; readers
subscribe to a table with an optional record filter. The in-memory feed
serves a single process, the Redis feed fans out over pub/sub.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from redis.asyncio import Redis

from mockmatch.core.error_handler import safe_background_task

logger = logging.getLogger(__name__)

ChangeRecord = Dict[str, Any]
ChangeCallback = Callable[[ChangeRecord], Union[Awaitable[None], None]]
RecordFilter = Callable[[ChangeRecord], bool]

DEFAULT_CHANNEL_TTL_SECONDS = 5 * 60

__all__ = [
    "ChangeFeedProtocol",
    "Subscription",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
    "RealtimeManager",
]


async def _dispatch(callback: ChangeCallback, record: ChangeRecord) -> None:
    try:
        outcome = callback(record)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.exception("Change feed subscriber failed for record %s", record.get("id"))


@dataclass
class Subscription:
    table: str
    callback: ChangeCallback
    record_filter: Optional[RecordFilter] = None
    _closer: Optional[Callable[["Subscription"], Awaitable[None]]] = field(default=None, repr=False)
    closed: bool = False

    def accepts(self, record: ChangeRecord) -> bool:
        return not self.closed and (self.record_filter is None or self.record_filter(record))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._closer is not None:
            await self._closer(self)


class ChangeFeedProtocol:
    """Interface shared by the change feed backends."""

    async def publish(self, table: str, record: ChangeRecord) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        record_filter: Optional[RecordFilter] = None,
    ) -> Subscription:  # pragma: no cover - interface
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryChangeFeed(ChangeFeedProtocol):
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscription]] = {}

    async def publish(self, table: str, record: ChangeRecord) -> None:
        for subscription in list(self._subscribers.get(table, ())):
            if subscription.accepts(record):
                await _dispatch(subscription.callback, record)

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        record_filter: Optional[RecordFilter] = None,
    ) -> Subscription:
        subscription = Subscription(table, callback, record_filter, _closer=self._remove)
        self._subscribers.setdefault(table, []).append(subscription)
        return subscription

    async def _remove(self, subscription: Subscription) -> None:
        listeners = self._subscribers.get(subscription.table, [])
        if subscription in listeners:
            listeners.remove(subscription)

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, ()))

    async def close(self) -> None:
        for listeners in self._subscribers.values():
            for subscription in listeners:
                subscription.closed = True
        self._subscribers.clear()


class RedisChangeFeed(ChangeFeedProtocol):
    """Redis pub/sub backed feed: one channel per table, one reader task per subscription."""

    def __init__(self, redis: Redis, *, prefix: str = "mockmatch:changes") -> None:
        self._redis = redis
        self._prefix = prefix
        self._readers: Dict[int, asyncio.Task] = {}

    def _channel(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    async def publish(self, table: str, record: ChangeRecord) -> None:
        await self._redis.publish(self._channel(table), json.dumps(record, default=str))

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        record_filter: Optional[RecordFilter] = None,
    ) -> Subscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel(table))
        subscription = Subscription(table, callback, record_filter, _closer=self._unsubscribe)
        self._readers[id(subscription)] = safe_background_task(
            f"change-feed:{table}",
            self._read(pubsub, subscription),
        )
        return subscription

    async def _read(self, pubsub: Any, subscription: Subscription) -> None:
        try:
            while not subscription.closed:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if not message or message.get("type") != "message":
                    continue
                raw = message.get("data")
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                try:
                    record = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning("Dropping malformed change record on %s", subscription.table)
                    continue
                if subscription.accepts(record):
                    await _dispatch(subscription.callback, record)
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()

    async def _unsubscribe(self, subscription: Subscription) -> None:
        task = self._readers.pop(id(subscription), None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._readers.values())
        self._readers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._redis.aclose()


@dataclass
class _Channel:
    name: str
    subscription: Subscription
    cleanup_handle: Optional[asyncio.TimerHandle] = None


class RealtimeManager:
    """
    Named subscriptions with a lifetime.

    Creating a channel under an existing name replaces the old one. Every
    channel is removed automatically after ``ttl_seconds`` so forgotten
    subscriptions do not pile up.
    """

    def __init__(self, feed: ChangeFeedProtocol, *, ttl_seconds: float = DEFAULT_CHANNEL_TTL_SECONDS) -> None:
        self.feed = feed
        self.ttl_seconds = ttl_seconds
        self._channels: Dict[str, _Channel] = {}

    async def create_channel(
        self,
        name: str,
        table: str,
        callback: ChangeCallback,
        *,
        record_filter: Optional[RecordFilter] = None,
        ttl_seconds: Optional[float] = None,
    ) -> Subscription:
        await self.remove_channel(name)
        subscription = await self.feed.subscribe(table, callback, record_filter=record_filter)
        channel = _Channel(name=name, subscription=subscription)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl > 0:
            loop = asyncio.get_running_loop()
            channel.cleanup_handle = loop.call_later(ttl, self._expire, name, subscription)
        self._channels[name] = channel
        logger.debug("Realtime channel %s created on %s", name, table)
        return subscription

    def _expire(self, name: str, subscription: Subscription) -> None:
        channel = self._channels.get(name)
        if channel is None or channel.subscription is not subscription:
            return
        logger.info("Realtime channel %s expired", name)
        safe_background_task(f"realtime-expire:{name}", self.remove_channel(name))

    async def remove_channel(self, name: str) -> bool:
        channel = self._channels.pop(name, None)
        if channel is None:
            return False
        if channel.cleanup_handle is not None:
            channel.cleanup_handle.cancel()
        await channel.subscription.close()
        return True

    async def remove_all_channels(self) -> None:
        for name in list(self._channels):
            await self.remove_channel(name)

    def get_active_channels(self) -> list[str]:
        return list(self._channels)

    def is_channel_active(self, name: str) -> bool:
        return name in self._channels

    def get_channel_count(self) -> int:
        return len(self._channels)
