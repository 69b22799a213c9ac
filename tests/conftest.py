"""
Shared fixtures: isolated stores, registries, fake sockets and an app client.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from vetnet.core.config import Settings
from vetnet.core.state import AppState
from vetnet.services.connection_manager import ConnectionManager
from vetnet.services.media_credentials import MediaCredentialAdapter
from vetnet.services.net_chat import NetChat
from vetnet.services.net_service import NetService
from vetnet.services.record_store import RecordStore
from vetnet.services.roles import AuthorizationEngine
from vetnet.services.session_registry import SessionRegistry
from vetnet.services.speak_requests import SpeakRequestArbiter

HOST = "host-1"


def run(coro):
    """Drive a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


class FakeWebSocket:
    """Just enough of a Starlette WebSocket for the ConnectionManager."""

    def __init__(self, name: str = "ws", fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.sent: list = []
        self.client_state = WebSocketState.CONNECTING

    async def accept(self) -> None:
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def event_types(self) -> list:
        return [m["eventType"] for m in self.sent]


class RecordingPublisher:
    """Publisher that remembers what it was asked to send."""

    def __init__(self, delay: float = 0, fail: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.events: list = []

    async def publish(self, net_id, event_type, payload):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("relay down")
        self.events.append((net_id, getattr(event_type, "value", event_type), payload))
        return 1

    async def broadcast_global(self, event_type, payload):
        if self.fail:
            raise ConnectionError("relay down")
        self.events.append((None, getattr(event_type, "value", event_type), payload))
        return 1

    def types(self) -> list:
        return [event_type for _, event_type, _ in self.events]


def make_settings(**overrides) -> Settings:
    config = Settings()
    config.PUB_SUB_SERVICE = "memory"
    config.STORE_FILE = ""
    config.LIVEKIT_API_KEY = ""
    config.LIVEKIT_API_SECRET = ""
    config.LIVEKIT_URL = ""
    config.MAX_SPEAKERS = 10
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def registry(store):
    return SessionRegistry(store, AuthorizationEngine(max_speakers=10))


@pytest.fixture
def arbiter(registry):
    return SpeakRequestArbiter(registry)


@pytest.fixture
def net(registry):
    return registry.create_net(HOST, "Morning Brief", "Daily ops")


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def service(registry, arbiter, publisher):
    return NetService(registry, arbiter, NetChat(registry), MediaCredentialAdapter(registry), publisher)


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def app_state():
    return AppState(make_settings())


@pytest.fixture
def client(app_state):
    from vetnet.main import create_app

    with TestClient(create_app(app_state)) as test_client:
        yield test_client
