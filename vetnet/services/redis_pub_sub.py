# vetnet/services/redis_pub_sub.py
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from vetnet.models.models import Event
from vetnet.services.connection_manager import ConnectionManager, _event_name

logger = logging.getLogger(__name__)

NET_CHANNEL_PREFIX = "net:"
GLOBAL_CHANNEL = "nets:global"


def net_channel(net_id: str) -> str:
    return f"{NET_CHANNEL_PREFIX}{net_id}"


class AsyncRedisPubSubService:
    """
    Relays net events through Redis so every backend instance can fan them
    out to its own sockets.

    Commands call ``publish`` / ``broadcast_global`` exactly as they would on
    the local ConnectionManager. Events go to one channel per net (so the
    order within a net is kept) plus a shared channel for lifecycle events.
    Each instance runs ``listen`` in the background and hands whatever
    arrives to its local ConnectionManager.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        host: str = "localhost",
        port: int = 6379,
        access_key: str = "",
        ssl: bool = False,
        client: Optional[Any] = None,
    ):
        self.connection_manager = connection_manager
        self.host = host
        self.port = port
        self.access_key = access_key
        self.ssl = ssl
        self.client = client
        self.pubsub = None

    @property
    def url(self) -> str:
        scheme = "rediss" if self.ssl else "redis"
        auth = f":{self.access_key}@" if self.access_key else ""
        return f"{scheme}://{auth}{self.host}:{self.port}"

    async def connect(self):
        """Establish async connection to Redis."""
        if self.client is None:
            self.client = redis.from_url(self.url, decode_responses=True)
        await self.client.ping()
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    async def _send(self, channel: str, event: Event) -> int:
        await self.client.publish(channel, json.dumps(event.model_dump()))
        logger.debug(f"📤 Published {event.event_type} to Redis channel '{channel}'")
        return 0

    async def publish(self, net_id: str, event_type: str, payload: Any) -> int:
        """Publish a net event to that net's channel."""
        event = Event(event_type=_event_name(event_type), payload=payload, net_id=str(net_id))
        return await self._send(net_channel(event.net_id), event)

    async def broadcast_global(self, event_type: str, payload: Any) -> int:
        """Publish a lifecycle event every connected client should see."""
        event = Event(event_type=_event_name(event_type), payload=payload)
        return await self._send(GLOBAL_CHANNEL, event)

    async def handle_message(self, message: dict) -> None:
        """Decode one Redis pub/sub message and deliver it locally."""
        if message.get("type") not in ("message", "pmessage"):
            return
        try:
            event = Event.model_validate(json.loads(message["data"]))
        except (ValueError, TypeError) as e:
            logger.error(f"Error decoding Redis message: {e}")
            return

        logger.debug(f"➡ Redis: routing {event.event_type} net={event.net_id}")
        await self.connection_manager.deliver(event)

    async def listen(self):
        """
        Subscribe to every net channel plus the global channel and forward
        what arrives until the task is cancelled.
        """
        self.pubsub = self.client.pubsub()
        await self.pubsub.psubscribe(f"{NET_CHANNEL_PREFIX}*")
        await self.pubsub.subscribe(GLOBAL_CHANNEL)
        logger.info(f"✓ Subscribed to Redis pattern '{NET_CHANNEL_PREFIX}*' and '{GLOBAL_CHANNEL}'")

        async for message in self.pubsub.listen():
            await self.handle_message(message)

    async def close(self):
        """Close connections."""
        if self.pubsub:
            await self.pubsub.unsubscribe()
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
