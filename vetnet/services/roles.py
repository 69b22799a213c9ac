# vetnet/services/roles.py

from __future__ import annotations

import logging
from typing import Optional

from vetnet.core.errors import (
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    NotFoundError,
)
from vetnet.models.models import Net, Participant, Role

logger = logging.getLogger(__name__)

SPEAKING_ROLES = frozenset({Role.HOST, Role.CO_HOST, Role.SPEAKER})
MODERATOR_ROLES = frozenset({Role.HOST, Role.CO_HOST})

DEFAULT_MAX_SPEAKERS = 10


def has_speaking_privilege(role: Role | str) -> bool:
    """True for roles allowed to publish audio: host, co-host and speaker."""
    return Role(role) in SPEAKING_ROLES


def is_moderator(role: Role | str) -> bool:
    return Role(role) in MODERATOR_ROLES


# ============================================================================
# ROLE & AUTHORIZATION ENGINE
# ============================================================================

class AuthorizationEngine:
    """
    Gatekeeping for privileged transitions.

    Every check raises before anything is written, so a rejected command has
    no partial effects. Callers pass in the current registry state (net and
    participant rows) rather than letting the engine read it, which keeps the
    engine pure and the checks trivially testable.
    """

    def __init__(self, max_speakers: int = DEFAULT_MAX_SPEAKERS) -> None:
        self.max_speakers = max_speakers

    def require_live(self, net: Net) -> None:
        if not net.is_live:
            raise InvalidStateError(f"Net {net.id} has ended")

    def require_active(self, participant: Optional[Participant], user_id: str) -> Participant:
        if participant is None or not participant.is_active:
            raise NotFoundError(f"User {user_id} is not in this net")
        return participant

    def require_moderator(self, actor: Optional[Participant], action: str) -> None:
        """Caller must currently hold host or co-host."""
        if actor is None or not actor.is_active or not is_moderator(actor.role):
            raise AuthorizationError(f"Only hosts can {action}")

    def require_net_host(self, net: Net, user_id: str, action: str) -> None:
        """Caller must be the fixed host the net was created by."""
        if net.host_id != user_id:
            raise AuthorizationError(f"Only the net host can {action}")

    def require_can_end(self, net: Net, actor_id: str, actor: Optional[Participant]) -> None:
        if net.host_id == actor_id:
            return
        self.require_moderator(actor, "end the net")

    def require_speaker_capacity(self, speaking_count: int) -> None:
        if speaking_count >= self.max_speakers:
            logger.info("Speaker cap hit (%d/%d)", speaking_count, self.max_speakers)
            raise CapacityError("maximum speakers reached; demote someone first")

    def require_can_toggle_mute(self, participant: Optional[Participant], user_id: str) -> Participant:
        participant = self.require_active(participant, user_id)
        if not has_speaking_privilege(participant.role):
            raise AuthorizationError("Only speakers can toggle mute")
        return participant

    def check_invite_cohost(
        self, net: Net, actor_id: str, target: Optional[Participant], target_id: str, speaking_count: int
    ) -> Participant:
        self.require_live(net)
        self.require_net_host(net, actor_id, "invite co-hosts")
        target = self.require_active(target, target_id)
        if target.role == Role.HOST:
            raise InvalidStateError("The host cannot be made a co-host")
        if not has_speaking_privilege(target.role):
            self.require_speaker_capacity(speaking_count)
        return target

    def check_demote(
        self, net: Net, actor: Optional[Participant], target: Optional[Participant], target_id: str
    ) -> Participant:
        self.require_live(net)
        self.require_moderator(actor, "demote speakers")
        target = self.require_active(target, target_id)
        if target.role == Role.HOST:
            raise AuthorizationError("The host cannot be demoted")
        if target.role == Role.CO_HOST:
            self.require_net_host(net, actor.user_id, "demote co-hosts")
        elif target.role != Role.SPEAKER:
            raise InvalidStateError(f"Cannot demote a participant with role {Role(target.role).value}")
        return target
