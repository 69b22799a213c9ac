# vetnet/services/session_registry.py

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import List, Optional, Tuple

from vetnet.core.errors import NotFoundError, ValidationError
from vetnet.models.models import (
    ROLE_ORDER,
    JoinResult,
    Net,
    NetDetail,
    NetStatus,
    NetSummary,
    Participant,
    RequestStatus,
    Role,
    SpeakRequest,
    utcnow,
)
from vetnet.services.record_store import RecordStore
from vetnet.services.roles import SPEAKING_ROLES, AuthorizationEngine

logger = logging.getLogger(__name__)

NETS = "nets"
PARTICIPANTS = "net_participants"
SPEAK_REQUESTS = "speak_requests"


def participant_key(net_id: str, user_id: str) -> str:
    return f"{net_id}:{user_id}"


def _record(model) -> dict:
    return model.model_dump(mode="json")


class ParticipantState(Enum):
    """Where a user stands in a net before a join is applied."""

    ABSENT = "absent"
    ACTIVE_HOST = "active_host"
    ACTIVE_OTHER = "active_other"
    INACTIVE = "inactive"


# ============================================================================
# SESSION REGISTRY
# ============================================================================

class SessionRegistry:
    """
    Authoritative state for nets and their participants.

    Each (net, user) pair owns exactly one participant row. Leaving stamps
    ``left_at`` on it; rejoining clears ``left_at`` on the same row, so the
    history of who was in a net is kept without duplicate rows.

    All mutations validate first (through the AuthorizationEngine) and then
    write inside one store transaction.
    """

    def __init__(self, store: RecordStore, engine: Optional[AuthorizationEngine] = None) -> None:
        self.store = store
        self.engine = engine or AuthorizationEngine()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def require_net(self, net_id: str) -> Net:
        record = self.store.get(NETS, net_id)
        if record is None:
            raise NotFoundError("Net not found")
        return Net.model_validate(record)

    def participant(self, net_id: str, user_id: str) -> Optional[Participant]:
        record = self.store.get(PARTICIPANTS, participant_key(net_id, user_id))
        return Participant.model_validate(record) if record else None

    def active_participant(self, net_id: str, user_id: str) -> Optional[Participant]:
        participant = self.participant(net_id, user_id)
        return participant if participant and participant.is_active else None

    def active_participants(self, net_id: str) -> List[Participant]:
        records = self.store.query(PARTICIPANTS, net_id=net_id, left_at=None)
        participants = [Participant.model_validate(r) for r in records]
        participants.sort(key=lambda p: ROLE_ORDER[Role(p.role)])
        return participants

    def speaking_count(self, net_id: str) -> int:
        """Active participants holding host, co-host or speaker."""
        return self.store.count(
            PARTICIPANTS,
            net_id=net_id,
            left_at=None,
            role=[role.value for role in SPEAKING_ROLES],
        )

    def participant_state(self, net: Net, user_id: str) -> Tuple[ParticipantState, Optional[Participant]]:
        participant = self.participant(net.id, user_id)
        if participant is None:
            return ParticipantState.ABSENT, None
        if not participant.is_active:
            return ParticipantState.INACTIVE, participant
        if participant.role == Role.HOST:
            return ParticipantState.ACTIVE_HOST, participant
        return ParticipantState.ACTIVE_OTHER, participant

    def get_net(self, net_id: str) -> NetDetail:
        """Net plus its active participants, pending requests and head counts."""
        net = self.require_net(net_id)
        participants = self.active_participants(net_id)
        pending = [
            SpeakRequest.model_validate(r)
            for r in self.store.query(SPEAK_REQUESTS, net_id=net_id, status=RequestStatus.PENDING.value)
        ]
        speakers = sum(1 for p in participants if Role(p.role) in SPEAKING_ROLES)
        return NetDetail(
            **net.model_dump(),
            participants=participants,
            pending_requests=pending,
            speaker_count=speakers,
            listener_count=len(participants) - speakers,
        )

    def list_nets(self, status: NetStatus | str = NetStatus.LIVE) -> List[NetSummary]:
        """Nets with the given status, newest first."""
        status = NetStatus(status)
        summaries = []
        for record in self.store.query(NETS, descending=True, status=status.value):
            summaries.append(
                NetSummary(
                    **record,
                    participant_count=self.store.count(PARTICIPANTS, net_id=record["id"], left_at=None),
                    speaker_count=self.speaking_count(record["id"]),
                )
            )
        return summaries

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_net(
        self,
        host_id: str,
        name: str,
        description: Optional[str] = None,
        host_username: Optional[str] = None,
    ) -> Net:
        """
        Create a live net and seat its creator as the unmuted host.

        Raises:
            ValidationError: name is empty or blank
        """
        if not name or not name.strip():
            raise ValidationError("Net name required")

        net = Net(id=str(uuid.uuid4()), name=name.strip(), description=description or None, host_id=host_id)
        host = Participant(
            net_id=net.id,
            user_id=host_id,
            username=host_username or host_id,
            role=Role.HOST,
            is_muted=False,
        )
        with self.store.transaction():
            self.store.insert(NETS, net.id, _record(net))
            self.store.insert(PARTICIPANTS, participant_key(net.id, host_id), _record(host))

        logger.info("✓ Created net '%s' (%s) hosted by %s", net.name, net.id, host_id)
        return net

    def join(self, net_id: str, user_id: str, username: Optional[str] = None) -> JoinResult:
        """
        Seat a user in a net.

        Decision table over the user's current state:
            ACTIVE_HOST / ACTIVE_OTHER -> returned unchanged
            ABSENT                     -> new row
            INACTIVE                   -> old row reactivated

        New and reactivated rows get ``host`` (unmuted) when the user is the
        net's original host, ``listener`` (muted) otherwise.
        """
        net = self.require_net(net_id)
        self.engine.require_live(net)

        state, existing = self.participant_state(net, user_id)
        if state in (ParticipantState.ACTIVE_HOST, ParticipantState.ACTIVE_OTHER):
            return JoinResult(participant=existing, already_joined=True)

        is_original_host = net.host_id == user_id
        role = Role.HOST if is_original_host else Role.LISTENER
        key = participant_key(net_id, user_id)

        if state == ParticipantState.INACTIVE:
            record = self.store.update(
                PARTICIPANTS,
                key,
                role=role.value,
                is_muted=not is_original_host,
                joined_at=utcnow().isoformat(),
                left_at=None,
                username=username or existing.username,
            )
        else:
            participant = Participant(
                net_id=net_id,
                user_id=user_id,
                username=username or user_id,
                role=role,
                is_muted=not is_original_host,
            )
            record = self.store.insert(PARTICIPANTS, key, _record(participant))

        participant = Participant.model_validate(record)
        logger.info("→ %s joined net %s as %s", user_id, net_id, role.value)
        return JoinResult(participant=participant, host_reclaimed=is_original_host)

    def leave(self, net_id: str, user_id: str) -> Optional[Participant]:
        """
        Mark the user's active row as left.

        Returns:
            The updated participant, or None when the user was not active
            (leaving twice is a no-op)
        """
        net = self.require_net(net_id)
        self.engine.require_live(net)

        participant = self.active_participant(net_id, user_id)
        if participant is None:
            return None

        record = self.store.update(
            PARTICIPANTS, participant_key(net_id, user_id), left_at=utcnow().isoformat()
        )
        logger.info("✗ %s left net %s", user_id, net_id)
        return Participant.model_validate(record)

    def end(self, net_id: str, acting_user_id: str) -> Net:
        """
        End a net for good. Every active participant is marked as left.

        Raises:
            NotFoundError: unknown net
            InvalidStateError: net already ended
            AuthorizationError: actor is neither the net host nor an active host/co-host
        """
        net = self.require_net(net_id)
        self.engine.require_live(net)
        self.engine.require_can_end(net, acting_user_id, self.active_participant(net_id, acting_user_id))

        ended_at = utcnow().isoformat()
        active = self.store.query(PARTICIPANTS, net_id=net_id, left_at=None)
        with self.store.transaction():
            self.store.update(NETS, net_id, status=NetStatus.ENDED.value, ended_at=ended_at)
            for record in active:
                self.store.update(PARTICIPANTS, participant_key(net_id, record["user_id"]), left_at=ended_at)

        logger.info("■ Net %s ended by %s (%d participants released)", net_id, acting_user_id, len(active))
        return self.require_net(net_id)

    # ------------------------------------------------------------------
    # Role transitions
    # ------------------------------------------------------------------

    def set_role(self, net_id: str, user_id: str, role: Role, is_muted: bool) -> Participant:
        """Write a role change. Callers run the authorization checks first."""
        record = self.store.update(
            PARTICIPANTS, participant_key(net_id, user_id), role=Role(role).value, is_muted=is_muted
        )
        return Participant.model_validate(record)

    def invite_cohost(self, net_id: str, actor_id: str, target_user_id: str) -> Participant:
        """Promote an active participant to unmuted co-host. Only the net host may do this."""
        net = self.require_net(net_id)
        self.engine.check_invite_cohost(
            net,
            actor_id,
            self.participant(net_id, target_user_id),
            target_user_id,
            self.speaking_count(net_id),
        )
        participant = self.set_role(net_id, target_user_id, Role.CO_HOST, is_muted=False)
        logger.info("↑ %s is now co-host of net %s", target_user_id, net_id)
        return participant

    def demote_speaker(self, net_id: str, actor_id: str, target_user_id: str) -> Participant:
        """Send a speaker (or, for the net host, a co-host) back to the muted listeners."""
        net = self.require_net(net_id)
        self.engine.check_demote(
            net,
            self.active_participant(net_id, actor_id),
            self.participant(net_id, target_user_id),
            target_user_id,
        )
        participant = self.set_role(net_id, target_user_id, Role.LISTENER, is_muted=True)
        logger.info("↓ %s demoted to listener in net %s", target_user_id, net_id)
        return participant

    def toggle_mute(self, net_id: str, user_id: str) -> Participant:
        """Flip the caller's own mute flag. Listeners have nothing to toggle."""
        net = self.require_net(net_id)
        self.engine.require_live(net)
        participant = self.engine.require_can_toggle_mute(self.participant(net_id, user_id), user_id)
        record = self.store.update(
            PARTICIPANTS, participant_key(net_id, user_id), is_muted=not participant.is_muted
        )
        return Participant.model_validate(record)
