# vetnet/services/media_credentials.py

"""
Credentials for the external media transport (LiveKit).

The transport does the audio; this module only decides what a participant
may do in it. Publish rights follow ``has_speaking_privilege`` so the grant
can never disagree with the role checks done by the AuthorizationEngine.

Tokens use LiveKit's access-token layout: an HS256 JWT issued by the API
key, ``sub`` = participant identity, and a ``video`` grant scoped to one
room. Old tokens are not revoked when a role changes; the client swaps in
the refreshed one and the transport enforces expiry.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Optional

from jose import jwt

from vetnet.core.errors import NotFoundError, UnavailableError
from vetnet.models.models import MediaConfig, MediaCredential, Participant, Role
from vetnet.services.roles import has_speaking_privilege
from vetnet.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 6 * 60 * 60


def room_name(net_id: str) -> str:
    return f"net-{net_id}"


class MediaCredentialAdapter:
    def __init__(
        self,
        registry: SessionRegistry,
        api_key: str = "",
        api_secret: str = "",
        url: str = "",
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self.registry = registry
        self.api_key = api_key
        self.api_secret = api_secret
        self.url = url
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_secret and self.url)

    def config(self) -> MediaConfig:
        """What the frontend needs to know before trying to connect audio."""
        return MediaConfig(enabled=self.enabled, url=self.url)

    def mint(self, net_id: str, user_id: str) -> MediaCredential:
        """
        Issue a credential matching the participant's current role.

        Raises:
            UnavailableError: transport credentials are not configured
            NotFoundError: user has not joined the net (or already left)
        """
        return self._issue(net_id, user_id)

    def refresh(self, net_id: str, user_id: str) -> MediaCredential:
        """Re-issue after a role change. The previous token is left to expire."""
        return self._issue(net_id, user_id)

    def _issue(self, net_id: str, user_id: str) -> MediaCredential:
        if not self.enabled:
            raise UnavailableError("Audio not configured; LiveKit credentials not set. Audio will be simulated.")

        participant = self.registry.active_participant(net_id, user_id)
        if participant is None:
            raise NotFoundError("Must join net first")

        grant = self.grant_for(participant)
        token = jwt.encode(self._claims(participant, grant), self.api_secret, algorithm="HS256")
        logger.info(
            "🔑 Issued media token for %s in %s (publish=%s)", participant.username, grant["room"], grant["canPublish"]
        )
        return MediaCredential(
            token=token,
            url=self.url,
            room=grant["room"],
            identity=participant.username,
            can_publish=grant["canPublish"],
            can_subscribe=grant["canSubscribe"],
        )

    @staticmethod
    def grant_for(participant: Participant) -> dict:
        return {
            "room": room_name(participant.net_id),
            "roomJoin": True,
            "canPublish": has_speaking_privilege(participant.role),
            "canSubscribe": True,
            "canPublishData": True,
        }

    def _claims(self, participant: Participant, grant: dict, now: Optional[int] = None) -> dict:
        now = int(now if now is not None else time.time())
        return {
            "iss": self.api_key,
            "sub": participant.username,
            "name": participant.username,
            "jti": str(uuid.uuid4()),
            "nbf": now,
            "exp": now + self.ttl_seconds,
            "metadata": json.dumps({"role": Role(participant.role).value, "user_id": participant.user_id}),
            "video": grant,
        }
