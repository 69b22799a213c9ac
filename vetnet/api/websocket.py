# vetnet/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from vetnet.core.errors import NotFoundError
from vetnet.core.state import AppState

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, user_id: str = "anonymous"):
    """
    WebSocket endpoint for real-time net updates.

    Protocol:
    =========

    Client -> Server Messages:
    --------------------------
    Subscribe to a net (replaces any previous subscription):
        {"type": "subscribe", "netId": "uuid-123"}
        Response: {"type": "subscribed", "netId": "uuid-123"}

    Unsubscribe:
        {"type": "unsubscribe"}
        Response: {"type": "unsubscribed"}

    Server -> Client Messages:
    --------------------------
    Net event (only for the subscribed net):
        {"eventType": "net:participant:join", "payload": {...}, "netId": "uuid-123"}

    Lifecycle event (every connection):
        {"eventType": "net:created", "payload": {...}}

    Error:
        {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects with user_id parameter
    2. Connection accepted; global events start flowing
    3. Client subscribes to the net it is viewing
    4. On disconnect the subscription is dropped
    """
    state: AppState = websocket.app.state.vetnet
    manager = state.connection_manager

    await manager.connect(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            if not isinstance(message, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            kind = message.get("type")
            logger.debug("Websocket input from %s: %s", user_id, message)

            if kind == "subscribe":
                net_id = message.get("netId")
                if not net_id:
                    await websocket.send_json({"type": "error", "message": "netId required"})
                    continue
                net_id = str(net_id)
                try:
                    state.registry.require_net(net_id)
                except NotFoundError as e:
                    await websocket.send_json({"type": "error", "message": e.message})
                    continue
                manager.subscribe(websocket, net_id)
                await websocket.send_json({"type": "subscribed", "netId": net_id})

            elif kind == "unsubscribe":
                manager.unsubscribe(websocket)
                await websocket.send_json({"type": "unsubscribed"})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        manager.disconnect(websocket)
