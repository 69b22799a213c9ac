# vetnet/services/connection_manager.py

from __future__ import annotations

from typing import Any, Dict, Optional, Set
from fastapi import WebSocket
from starlette.websockets import WebSocketState
import logging

from vetnet.models.models import Event

logger = logging.getLogger(__name__)


def _event_name(event_type: Any) -> str:
    return str(getattr(event_type, "value", event_type))


# ============================================================================
# WEBSOCKET CONNECTION MANAGER (FAN-OUT BUS)
# ============================================================================

class ConnectionManager:
    """
    Tracks open WebSocket connections and which net each one is watching,
    and fans state-change events out to them.

    Every connection watches at most one net at a time. Subscribing to a
    new net silently drops the previous subscription, matching how the
    client moves between rooms.

    Data Structures:
        nets: Maps net_id -> Set of WebSocket connections watching that net
              Example: {"uuid-123": {websocket1, websocket2}}

        connection_nets: Maps WebSocket -> net_id it watches (None when idle)
                         Example: {websocket1: "uuid-123", websocket2: None}

        connection_users: Maps WebSocket -> user_id (for logging/debugging)

    Delivery:
        Best effort, fire and forget. A connection that is closed or fails a
        write is skipped and dropped from the map; nothing is retried or
        queued. Per-net ordering holds because callers publish sequentially
        and each publish awaits every send before returning.

    Ownership:
        Only connection lifecycle events (connect, subscribe, unsubscribe,
        disconnect) mutate these maps. Publishing reads them, and treats a
        failed write as the disconnect it almost always is.
    """

    def __init__(self) -> None:
        """Initialize connection manager with empty data structures."""
        # Map: net_id -> Set[WebSocket connections]
        self.nets: Dict[str, Set[WebSocket]] = {}

        # Map: WebSocket -> net_id it is subscribed to
        self.connection_nets: Dict[WebSocket, Optional[str]] = {}

        # Map: WebSocket -> user_id (for logging)
        self.connection_users: Dict[WebSocket, str] = {}

        self.events_published: int = 0

    async def connect(self, websocket: WebSocket, user_id: str = "anonymous") -> None:
        """
        Accept a new WebSocket connection.

        Note:
            The connection is not subscribed to any net yet. It still
            receives global broadcasts (net created / ended) right away.
        """
        await websocket.accept()

        self.connection_nets[websocket] = None
        self.connection_users[websocket] = user_id

        logger.info("✓ User %s connected. Total: %d", user_id, len(self.connection_nets))

    def disconnect(self, websocket: WebSocket) -> None:
        """
        Forget a connection and its subscription. Safe to call twice.
        """
        if websocket not in self.connection_nets:
            return

        user_id = self.connection_users.get(websocket, "unknown")
        self._drop_subscription(websocket)

        del self.connection_nets[websocket]
        self.connection_users.pop(websocket, None)

        logger.info("✗ User %s disconnected. Total: %d", user_id, len(self.connection_nets))

    def subscribe(self, websocket: WebSocket, net_id: str) -> None:
        """
        Watch a net, replacing whatever the connection watched before.

        Args:
            websocket: The WebSocket connection
            net_id: Net whose events the connection should receive
        """
        if websocket not in self.connection_nets:
            return  # Connection already closed

        net_id = str(net_id)
        self._drop_subscription(websocket)

        self.nets.setdefault(net_id, set()).add(websocket)
        self.connection_nets[websocket] = net_id

        user_id = self.connection_users.get(websocket, "anonymous")
        logger.info("→ %s subscribed to net %s (%s watching)", user_id, net_id, len(self.nets[net_id]))

    def unsubscribe(self, websocket: WebSocket) -> None:
        """Stop watching the current net. No-op when not subscribed."""
        if websocket not in self.connection_nets:
            return
        self._drop_subscription(websocket)

    def _drop_subscription(self, websocket: WebSocket) -> None:
        net_id = self.connection_nets.get(websocket)
        if net_id is None:
            return

        self.connection_nets[websocket] = None
        watchers = self.nets.get(net_id)
        if watchers is not None:
            watchers.discard(websocket)
            # Clean up empty nets from memory
            if not watchers:
                del self.nets[net_id]

    def subscribed_net(self, websocket: WebSocket) -> Optional[str]:
        return self.connection_nets.get(websocket)

    def subscriber_count(self, net_id: str) -> int:
        return len(self.nets.get(str(net_id), ()))

    async def publish(self, net_id: str, event_type: str, payload: Any) -> int:
        """
        Deliver an event to every connection watching ``net_id``.

        Returns:
            Number of connections the event was written to
        """
        event = Event(event_type=_event_name(event_type), payload=payload, net_id=str(net_id))
        return await self.deliver(event)

    async def broadcast_global(self, event_type: str, payload: Any) -> int:
        """
        Deliver an event to every open connection, subscribed or not.

        Used for net lifecycle events: whether a net exists matters to
        everyone browsing the net list, not only to its members.
        """
        event = Event(event_type=_event_name(event_type), payload=payload)
        return await self.deliver(event)

    async def deliver(self, event: Event) -> int:
        """
        Write an already-built event to its audience.

        Events with a ``net_id`` go to that net's watchers, events without
        one go to everybody. This is also the entry point for events relayed
        in from other processes.
        """
        if event.net_id is not None:
            if event.net_id not in self.nets:
                logger.debug("[routing] Skipped %s: net=%s has 0 subscribers", event.event_type, event.net_id)
                return 0
            connections = list(self.nets[event.net_id])  # Copy to avoid modification during iteration
        else:
            connections = list(self.connection_nets)

        message = event.to_wire()
        disconnected = set()
        delivered = 0

        for connection in connections:
            if connection.client_state != WebSocketState.CONNECTED:
                disconnected.add(connection)
                continue
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning("Send error to %s: %s", self.connection_users.get(connection, "unknown"), e)
                disconnected.add(connection)

        # Clean up failed connections
        for conn in disconnected:
            self.disconnect(conn)

        self.events_published += 1
        logger.info("📨 %s delivered to %d/%d clients", event.event_type, delivered, len(connections))
        return delivered

    def get_nets_info(self) -> Dict[str, int]:
        """
        Watcher counts for every net with at least one subscriber.

        Used by the /metrics endpoint and for debugging.
        """
        return {net_id: len(connections) for net_id, connections in self.nets.items()}
