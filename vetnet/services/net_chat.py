# vetnet/services/net_chat.py

from __future__ import annotations

import logging
import uuid
from typing import List

from vetnet.core.errors import AuthorizationError, ValidationError
from vetnet.models.models import NetMessage
from vetnet.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

NET_MESSAGES = "net_messages"
DEFAULT_HISTORY_LIMIT = 100


class NetChat:
    """Text chat that runs alongside a net's audio. Only people in the net may post."""

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry
        self.store = registry.store

    def history(self, net_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[NetMessage]:
        """Messages for a net in the order they were posted."""
        self.registry.require_net(net_id)
        records = self.store.query(NET_MESSAGES, net_id=net_id)
        if limit is not None and limit >= 0:
            records = records[:limit]
        return [NetMessage.model_validate(r) for r in records]

    def post(self, net_id: str, user_id: str, content: str) -> NetMessage:
        net = self.registry.require_net(net_id)
        self.registry.engine.require_live(net)
        if not content or not content.strip():
            raise ValidationError("Message content required")

        participant = self.registry.active_participant(net_id, user_id)
        if participant is None:
            raise AuthorizationError("Must be in net to send messages")

        message = NetMessage(
            id=str(uuid.uuid4()),
            net_id=net_id,
            user_id=user_id,
            username=participant.username,
            content=content.strip(),
        )
        self.store.insert(NET_MESSAGES, message.id, message.model_dump(mode="json"))
        return message
