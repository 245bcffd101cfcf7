"""
Row change feed.

Services publish a ``ChangeEvent`` after each committed insert, update or
delete. Consumers subscribe per table, optionally narrowed by a row filter
written as ``column=eq.value``, and read events from their own bounded queue.
A full queue drops its oldest event so publishers never block.

Fan-out is local to the process. A ``RedisChangeRelay`` attached to the feed
carries events between processes (API workers, Celery workers) over Redis
pub/sub.
"""
import asyncio
import json
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Set
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from hamro_task.core.config import settings
from hamro_task.core.logger import get_logger

logger = get_logger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to one row."""

    table: str
    type: ChangeType
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def record(self) -> Dict[str, Any]:
        """The row as it is after the change, or as it was before a delete."""
        return self.new if self.new is not None else (self.old or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "type": self.type.value,
            "new": self.new,
            "old": self.old,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            type=ChangeType(data["type"]),
            new=data.get("new"),
            old=data.get("old"),
        )


@dataclass(frozen=True)
class RowFilter:
    """Equality filter on one column."""

    column: str
    value: str

    def matches(self, event: ChangeEvent) -> bool:
        return str(event.record.get(self.column)) == self.value


def parse_filter(expression: Optional[str]) -> Optional[RowFilter]:
    """
    Parse ``column=eq.value`` into a RowFilter.

    Raises:
        ValueError: For any other operator or a malformed expression
    """
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    operator, dot, value = rest.partition(".")
    if not sep or not dot or not column or operator != "eq":
        raise ValueError(f"Unsupported filter expression: {expression!r}")
    return RowFilter(column=column.strip(), value=value)


@dataclass(eq=False)
class Subscription:
    """One consumer's view of the feed."""

    table: str
    row_filter: Optional[RowFilter] = None
    maxsize: int = 256
    dropped: int = 0
    queue: asyncio.Queue = field(init=False)
    closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.queue = asyncio.Queue(maxsize=self.maxsize)

    def wants(self, event: ChangeEvent) -> bool:
        if self.closed or event.table != self.table:
            return False
        return self.row_filter is None or self.row_filter.matches(event)

    def deliver(self, event: ChangeEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None once closed or when the timeout expires."""
        if self.closed and self.queue.empty():
            return None
        try:
            event = await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        return event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.queue.full():
            self.queue.get_nowait()
        # Wake a reader blocked in get()
        self.queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class ChangeFeed:
    """Fan-out of change events to table subscriptions."""

    def __init__(self, queue_size: Optional[int] = None) -> None:
        self._queue_size = queue_size or settings.change_feed_queue_size
        self._subscriptions: List[Subscription] = []
        self._relay: Optional["RedisChangeRelay"] = None

    def subscribe(self, table: str, row_filter: Optional[str] = None) -> Subscription:
        subscription = Subscription(
            table=table,
            row_filter=parse_filter(row_filter),
            maxsize=self._queue_size,
        )
        self._subscriptions.append(subscription)
        logger.debug("Change feed subscription opened", table=table, filter=row_filter)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def attach(self, relay: "RedisChangeRelay") -> None:
        self._relay = relay

    def detach(self, relay: "RedisChangeRelay") -> None:
        if self._relay is relay:
            self._relay = None

    def deliver(self, event: ChangeEvent) -> int:
        """Deliver an event to every matching local subscription; returns the count."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.wants(event):
                subscription.deliver(event)
                delivered += 1
        return delivered

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event locally and hand it to the relay, if one is attached.

        Returns:
            Number of local subscriptions that received the event
        """
        delivered = self.deliver(event)
        if self._relay is not None:
            self._relay.send(event)
        return delivered

    def publish_row(
        self,
        table: str,
        change: ChangeType,
        new: Optional[Dict[str, Any]] = None,
        old: Optional[Dict[str, Any]] = None,
    ) -> int:
        return self.publish(ChangeEvent(table=table, type=change, new=new, old=old))

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        self._relay = None


class RedisChangeRelay:
    """
    Bridge between a local ``ChangeFeed`` and a Redis pub/sub channel.

    Local events are published to the channel tagged with this relay's
    origin; messages from other origins are replayed into the local feed.
    A relay started with ``listen=False`` only publishes, which is all a
    Celery job needs.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        client: Optional[redis.Redis] = None,
        channel: Optional[str] = None,
    ) -> None:
        self.feed = feed
        self.client = client if client is not None else redis.from_url(settings.redis_url)
        self.channel = channel or settings.change_feed_channel
        self.origin = uuid4().hex
        self._pending: Set[asyncio.Task] = set()
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    def encode(self, event: ChangeEvent) -> str:
        return json.dumps({"origin": self.origin, "event": event.to_dict()}, default=str)

    def send(self, event: ChangeEvent) -> None:
        """Schedule the event for publishing on the running loop."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Change event not relayed outside an event loop", table=event.table)
            return
        task = loop.create_task(self._publish(self.encode(event)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish(self, payload: str) -> None:
        try:
            await self.client.publish(self.channel, payload)
        except (RedisError, OSError) as e:
            logger.warning("Change event relay failed", channel=self.channel, error=str(e))

    def receive(self, data: Any) -> Optional[ChangeEvent]:
        """
        Replay a message from the channel into the local feed.

        Returns:
            The replayed event, or None for this relay's own messages

        Raises:
            ValueError: If the message is not a change event
        """
        try:
            message = json.loads(data)
            if message.get("origin") == self.origin:
                return None
            event = ChangeEvent.from_dict(message["event"])
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed change event: {e}")
        self.feed.deliver(event)
        return event

    async def start(self, listen: bool = True) -> None:
        self.feed.attach(self)
        if not listen:
            return
        self._pubsub = self.client.pubsub()
        try:
            await self._pubsub.subscribe(self.channel)
        except (RedisError, OSError) as e:
            logger.warning("Change feed relay unavailable, events stay local", error=str(e))
            self._pubsub = None
            return
        self._listener = asyncio.create_task(self._listen())
        logger.info("Change feed relay listening", channel=self.channel)

    async def _listen(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except (RedisError, OSError) as e:
                logger.warning("Change feed relay lost Redis", error=str(e))
                await asyncio.sleep(1.0)
                continue
            if message is None:
                continue
            try:
                self.receive(message["data"])
            except ValueError as e:
                logger.warning("Ignored change event", error=str(e))

    async def flush(self) -> None:
        """Wait for scheduled publishes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def stop(self) -> None:
        self.feed.detach(self)
        await self.flush()
        if self._listener is not None:
            self._listener.cancel()
            with suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        await self.client.aclose()


# Process-wide feed shared by services and websocket endpoints
change_feed = ChangeFeed()
