# vetnet/services/net_service.py

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from vetnet.core.errors import NetError
from vetnet.models.models import (
    EventType,
    JoinResult,
    Net,
    NetMessage,
    Participant,
    SpeakRequest,
)
from vetnet.services.media_credentials import MediaCredentialAdapter
from vetnet.services.net_chat import NetChat
from vetnet.services.session_registry import SessionRegistry
from vetnet.services.speak_requests import SpeakRequestArbiter

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    """Anything that can fan events out: the local ConnectionManager or the Redis relay."""

    async def publish(self, net_id: str, event_type: str, payload: Any) -> int: ...

    async def broadcast_global(self, event_type: str, payload: Any) -> int: ...


def _dump(model) -> dict:
    return model.model_dump(mode="json")


def _role_delta(participant: Participant, **extra: Any) -> dict:
    return {
        "user_id": participant.user_id,
        "role": participant.role.value,
        "is_muted": participant.is_muted,
        **extra,
    }


# ============================================================================
# NET COMMANDS
# ============================================================================

class NetService:
    """
    Runs net commands one at a time per net and announces their results.

    Each command takes the net's lock, mutates the registry, then publishes
    its event before releasing the lock. Two commands on the same net can
    therefore never interleave (two approvals cannot both slip under the
    speaker cap), and subscribers see events in mutation order. Commands on
    different nets hold different locks and run freely.

    Publishing is best effort: once the mutation has committed, a failed
    publish is logged and the command still succeeds.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        arbiter: SpeakRequestArbiter,
        chat: NetChat,
        media: MediaCredentialAdapter,
        publisher: EventPublisher,
    ) -> None:
        self.registry = registry
        self.arbiter = arbiter
        self.chat = chat
        self.media = media
        self.publisher = publisher
        self._locks: Dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def net_scope(self, net_id: str) -> AsyncIterator[None]:
        """
        Hold the net's lock for the duration of a command.

        Only live nets get a lock. Unknown ids fail here with NotFoundError;
        ended nets accept no mutation, so their commands run unlocked and
        report the ended state themselves.
        """
        net = self.registry.require_net(net_id)
        if not net.is_live:
            yield
            return

        lock = self._locks.get(net.id)
        if lock is None:
            lock = self._locks[net.id] = asyncio.Lock()
        async with lock:
            yield

    async def _emit(self, net_id: Optional[str], event_type: EventType, payload: Any) -> None:
        try:
            if net_id is None:
                await self.publisher.broadcast_global(event_type, payload)
            else:
                await self.publisher.publish(net_id, event_type, payload)
        except Exception as e:
            logger.error("Failed to publish %s for net %s: %s", event_type.value, net_id, e)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_net(self, user_id: str, name: str, description: Optional[str] = None) -> Net:
        net = self.registry.create_net(user_id, name, description)
        async with self.net_scope(net.id):
            await self._emit(None, EventType.NET_CREATED, _dump(net))
        return net

    async def end(self, net_id: str, user_id: str) -> Net:
        async with self.net_scope(net_id):
            net = self.registry.end(net_id, user_id)
            await self._emit(None, EventType.NET_ENDED, {"net_id": net.id})
            # Waiters still queued on this lock find the net ended and fail
            self._locks.pop(net.id, None)
        return net

    async def join(self, net_id: str, user_id: str, username: Optional[str] = None) -> JoinResult:
        async with self.net_scope(net_id):
            result = self.registry.join(net_id, user_id, username)
            if not result.already_joined:
                await self._emit(net_id, EventType.PARTICIPANT_JOINED, _dump(result.participant))

        if self.media.enabled:
            try:
                result.credential = self.media.mint(net_id, user_id)
            except NetError as e:
                logger.warning("Could not issue media token for %s: %s", user_id, e)
        return result

    async def leave(self, net_id: str, user_id: str) -> Optional[Participant]:
        async with self.net_scope(net_id):
            participant = self.registry.leave(net_id, user_id)
            if participant is not None:
                await self._emit(net_id, EventType.PARTICIPANT_LEFT, {"user_id": user_id})
        return participant

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def invite_cohost(self, net_id: str, user_id: str, target_user_id: str) -> Participant:
        async with self.net_scope(net_id):
            participant = self.registry.invite_cohost(net_id, user_id, target_user_id)
            await self._emit(net_id, EventType.PARTICIPANT_ROLE, _role_delta(participant))
        return participant

    async def demote_speaker(self, net_id: str, user_id: str, target_user_id: str) -> Participant:
        async with self.net_scope(net_id):
            participant = self.registry.demote_speaker(net_id, user_id, target_user_id)
            await self._emit(net_id, EventType.PARTICIPANT_ROLE, _role_delta(participant))
        return participant

    async def toggle_mute(self, net_id: str, user_id: str) -> Participant:
        async with self.net_scope(net_id):
            participant = self.registry.toggle_mute(net_id, user_id)
            await self._emit(
                net_id,
                EventType.PARTICIPANT_MUTE,
                {"user_id": user_id, "is_muted": participant.is_muted},
            )
        return participant

    # ------------------------------------------------------------------
    # Speak requests
    # ------------------------------------------------------------------

    async def request_speak(self, net_id: str, user_id: str) -> SpeakRequest:
        async with self.net_scope(net_id):
            request, created = self.arbiter.request_speak(net_id, user_id)
            if created:
                participant = self.registry.participant(net_id, user_id)
                await self._emit(
                    net_id,
                    EventType.REQUEST_CREATED,
                    {**_dump(request), "username": participant.username if participant else user_id},
                )
        return request

    async def approve_speaker(
        self, net_id: str, user_id: str, request_id: str, target_user_id: Optional[str] = None
    ) -> SpeakRequest:
        async with self.net_scope(net_id):
            request, participant = self.arbiter.approve(net_id, request_id, target_user_id, user_id)
            await self._emit(
                net_id,
                EventType.PARTICIPANT_ROLE,
                _role_delta(participant, request_id=request.id),
            )
        return request

    async def deny_speaker(self, net_id: str, user_id: str, request_id: str) -> SpeakRequest:
        async with self.net_scope(net_id):
            request = self.arbiter.deny(net_id, request_id, user_id)
            await self._emit(
                net_id,
                EventType.REQUEST_DENIED,
                {"request_id": request.id, "user_id": request.user_id},
            )
        return request

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def post_message(self, net_id: str, user_id: str, content: str) -> NetMessage:
        async with self.net_scope(net_id):
            message = self.chat.post(net_id, user_id, content)
            await self._emit(net_id, EventType.MESSAGE_POSTED, _dump(message))
        return message

    def messages(self, net_id: str, limit: int = 100) -> List[NetMessage]:
        return self.chat.history(net_id, limit)
