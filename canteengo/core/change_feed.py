"""
CanteenGo — Change feed over Redis pub/sub

Architecture:
  - Order mutations publish a ChangeEvent to channel changes:{table} after commit
  - Subscribers register per table with an optional event type and column
    filters; non-matching events are dropped on the subscriber side
  - Delivery is a wake-up signal: consumers re-fetch the row from the store
    instead of applying the pushed snapshot
"""
import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "changes:"

INSERT = "INSERT"
UPDATE = "UPDATE"


def channel_for(table: str) -> str:
    return f"{CHANNEL_PREFIX}{table}"


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass
class ChangeEvent:
    table: str
    event_type: str
    new: dict[str, Any]
    old: dict[str, Any] | None = None
    committed_at: str = field(default_factory=_now)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "ChangeEvent":
        data = json.loads(raw)
        return cls(
            table=data["table"],
            event_type=data["event_type"],
            new=data.get("new") or {},
            old=data.get("old"),
            committed_at=data.get("committed_at") or _now(),
        )

    def matches(self, event_type: str | None, filters: dict[str, Any]) -> bool:
        if event_type is not None and self.event_type != event_type:
            return False
        return all(self.new.get(column) == value for column, value in filters.items())


class Subscription:
    """
    One live registration on the feed. Use as an async context manager, or
    call open()/close() explicitly; close() must run when the consumer goes
    away or the Redis connection stays subscribed.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        table: str,
        event_type: str | None = None,
        filters: dict[str, Any] | None = None,
    ):
        self.redis = redis
        self.table = table
        self.event_type = event_type
        self.filters = dict(filters or {})
        self.channel = channel_for(table)
        self._pubsub = None

    @property
    def is_open(self) -> bool:
        return self._pubsub is not None

    async def open(self) -> "Subscription":
        if self._pubsub is None:
            self._pubsub = self.redis.pubsub()
            await self._pubsub.subscribe(self.channel)
            logger.debug("Subscribed to %s filters=%s", self.channel, self.filters)
        return self

    async def get(self, timeout: float = 1.0) -> ChangeEvent | None:
        """Wait up to `timeout` seconds for the next matching event."""
        if self._pubsub is None:
            raise RuntimeError("Subscription is not open.")

        message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if not message or message["type"] != "message":
            return None

        try:
            event = ChangeEvent.from_json(message["data"])
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping malformed change event on %s: %r", self.channel, message["data"])
            return None

        if not event.matches(self.event_type, self.filters):
            return None
        return event

    async def close(self) -> None:
        if self._pubsub is None:
            return
        pubsub, self._pubsub = self._pubsub, None
        try:
            await pubsub.unsubscribe(self.channel)
        finally:
            await pubsub.aclose()
        logger.debug("Unsubscribed from %s", self.channel)

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ChangeFeed:
    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def publish(self, event: ChangeEvent) -> int:
        """Publish an event; returns the number of connected receivers."""
        return await self.redis.publish(channel_for(event.table), event.to_json())

    def subscribe(
        self,
        table: str,
        event_type: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> Subscription:
        return Subscription(self.redis, table, event_type=event_type, filters=filters)
