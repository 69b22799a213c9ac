# vetnet/services/speak_requests.py

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from vetnet.core.errors import InvalidStateError, NotFoundError, ValidationError
from vetnet.models.models import Participant, RequestStatus, Role, SpeakRequest, utcnow
from vetnet.services.roles import has_speaking_privilege
from vetnet.services.session_registry import PARTICIPANTS, SPEAK_REQUESTS, SessionRegistry, participant_key

logger = logging.getLogger(__name__)

# ============================================================================
# SPEAK-REQUEST ARBITRATION
# ============================================================================

class SpeakRequestArbiter:
    """
    Lifecycle of listeners' requests to speak.

    A request moves ``pending -> approved`` or ``pending -> denied`` exactly
    once; resolved requests never change again. A (net, user) pair has at
    most one pending request at a time.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry
        self.store = registry.store
        self.engine = registry.engine

    def get(self, net_id: str, request_id: str) -> SpeakRequest:
        record = self.store.get(SPEAK_REQUESTS, request_id)
        if record is None or record["net_id"] != net_id:
            raise NotFoundError("Speak request not found")
        return SpeakRequest.model_validate(record)

    def pending_for(self, net_id: str, user_id: str) -> Optional[SpeakRequest]:
        records = self.store.query(
            SPEAK_REQUESTS, net_id=net_id, user_id=user_id, status=RequestStatus.PENDING.value, limit=1
        )
        return SpeakRequest.model_validate(records[0]) if records else None

    def list_pending(self, net_id: str) -> List[SpeakRequest]:
        """Pending requests for a net, oldest first."""
        self.registry.require_net(net_id)
        return [
            SpeakRequest.model_validate(r)
            for r in self.store.query(SPEAK_REQUESTS, net_id=net_id, status=RequestStatus.PENDING.value)
        ]

    def request_speak(self, net_id: str, user_id: str) -> Tuple[SpeakRequest, bool]:
        """
        File a request to speak.

        Returns:
            (request, created) - ``created`` is False when an existing pending
            request was handed back instead of a new one
        """
        net = self.registry.require_net(net_id)
        self.engine.require_live(net)
        participant = self.engine.require_active(self.registry.participant(net_id, user_id), user_id)

        existing = self.pending_for(net_id, user_id)
        if existing is not None:
            return existing, False

        if has_speaking_privilege(participant.role):
            raise InvalidStateError("Already allowed to speak")

        request = SpeakRequest(id=str(uuid.uuid4()), net_id=net_id, user_id=user_id)
        self.store.insert(SPEAK_REQUESTS, request.id, request.model_dump(mode="json"))
        logger.info("✋ %s requested to speak in net %s", user_id, net_id)
        return request, True

    def _resolvable(self, net_id: str, request_id: str, approver_id: str, action: str) -> SpeakRequest:
        net = self.registry.require_net(net_id)
        self.engine.require_live(net)
        self.engine.require_moderator(self.registry.active_participant(net_id, approver_id), action)
        request = self.get(net_id, request_id)
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(f"Speak request already {RequestStatus(request.status).value}")
        return request

    def approve(
        self,
        net_id: str,
        request_id: str,
        target_user_id: Optional[str],
        approver_id: str,
    ) -> Tuple[SpeakRequest, Participant]:
        """
        Approve a pending request and promote its requester to unmuted speaker.

        The speaker cap is checked before anything is written; the request
        resolution and the role change commit together.

        Raises:
            AuthorizationError: approver is not an active host/co-host
            NotFoundError: unknown request, or requester no longer in the net
            InvalidStateError: request already resolved, or net ended
            CapacityError: speaker cap reached
        """
        request = self._resolvable(net_id, request_id, approver_id, "approve speakers")
        target_user_id = target_user_id or request.user_id
        if target_user_id != request.user_id:
            raise ValidationError("Target user does not match the speak request")

        target = self.engine.require_active(self.registry.participant(net_id, target_user_id), target_user_id)
        promote = not has_speaking_privilege(target.role)
        if promote:
            self.engine.require_speaker_capacity(self.registry.speaking_count(net_id))

        with self.store.transaction():
            record = self.store.update(
                SPEAK_REQUESTS,
                request_id,
                status=RequestStatus.APPROVED.value,
                resolved_at=utcnow().isoformat(),
                resolved_by=approver_id,
            )
            if promote:
                self.store.update(
                    PARTICIPANTS,
                    participant_key(net_id, target_user_id),
                    role=Role.SPEAKER.value,
                    is_muted=False,
                )

        logger.info("✓ %s approved %s to speak in net %s", approver_id, target_user_id, net_id)
        return SpeakRequest.model_validate(record), self.registry.participant(net_id, target_user_id)

    def deny(self, net_id: str, request_id: str, approver_id: str) -> SpeakRequest:
        """Deny a pending request. The requester's role is left alone."""
        self._resolvable(net_id, request_id, approver_id, "deny speakers")
        record = self.store.update(
            SPEAK_REQUESTS,
            request_id,
            status=RequestStatus.DENIED.value,
            resolved_at=utcnow().isoformat(),
            resolved_by=approver_id,
        )
        logger.info("✗ %s denied speak request %s in net %s", approver_id, request_id, net_id)
        return SpeakRequest.model_validate(record)
