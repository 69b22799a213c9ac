# vetnet/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from vetnet.core.config import Settings, settings as default_settings
from vetnet.services.connection_manager import ConnectionManager
from vetnet.services.media_credentials import MediaCredentialAdapter
from vetnet.services.net_chat import NetChat
from vetnet.services.net_service import NetService
from vetnet.services.record_store import RecordStore
from vetnet.services.redis_pub_sub import AsyncRedisPubSubService
from vetnet.services.roles import AuthorizationEngine
from vetnet.services.session_registry import SessionRegistry
from vetnet.services.speak_requests import SpeakRequestArbiter


class AppState:
    """
    Application singletons, wired once per app.

    Lives on ``app.state.vetnet`` so each FastAPI app (and each test) gets
    its own store, registry and connection map.
    """

    def __init__(self, config: Optional[Settings] = None, store: Optional[RecordStore] = None) -> None:
        self.settings = config or default_settings

        self.store = store or RecordStore(self.settings.STORE_FILE or None)
        self.engine = AuthorizationEngine(max_speakers=self.settings.MAX_SPEAKERS)
        self.registry = SessionRegistry(self.store, self.engine)
        self.arbiter = SpeakRequestArbiter(self.registry)
        self.chat = NetChat(self.registry)
        self.media = MediaCredentialAdapter(
            self.registry,
            api_key=self.settings.LIVEKIT_API_KEY,
            api_secret=self.settings.LIVEKIT_API_SECRET,
            url=self.settings.LIVEKIT_URL,
            ttl_seconds=self.settings.LIVEKIT_TOKEN_TTL,
        )
        self.connection_manager = ConnectionManager()

        self.redis_service: Optional[AsyncRedisPubSubService] = None
        if self.settings.PUB_SUB_SERVICE == "redis":
            self.redis_service = AsyncRedisPubSubService(
                self.connection_manager,
                host=self.settings.REDIS_HOST,
                port=self.settings.REDIS_PORT,
                access_key=self.settings.REDIS_ACCESS_KEY,
                ssl=self.settings.REDIS_SSL,
            )

        self.net_service = NetService(
            self.registry,
            self.arbiter,
            self.chat,
            self.media,
            publisher=self.redis_service or self.connection_manager,
        )

        # Metrics
        self.app_start_time: datetime = datetime.now(timezone.utc)
