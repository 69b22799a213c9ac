"""
Tests for speak-request arbitration.
"""

import pytest

from conftest import HOST
from vetnet.core.errors import (
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from vetnet.models.models import RequestStatus, Role
from vetnet.services.roles import AuthorizationEngine
from vetnet.services.session_registry import SessionRegistry
from vetnet.services.speak_requests import SpeakRequestArbiter


@pytest.fixture
def listener(registry, net):
    registry.join(net.id, "u1", "Listener One")
    return "u1"


class TestRequestSpeak:
    def test_creates_pending_request(self, arbiter, net, listener):
        request, created = arbiter.request_speak(net.id, listener)
        assert created is True
        assert request.status == RequestStatus.PENDING
        assert request.user_id == listener
        assert [r.id for r in arbiter.list_pending(net.id)] == [request.id]

    def test_second_request_returns_existing(self, arbiter, net, listener):
        first, _ = arbiter.request_speak(net.id, listener)
        second, created = arbiter.request_speak(net.id, listener)
        assert created is False
        assert second.id == first.id
        assert len(arbiter.list_pending(net.id)) == 1

    def test_requester_must_be_in_net(self, arbiter, net):
        with pytest.raises(NotFoundError):
            arbiter.request_speak(net.id, "stranger")

    def test_speakers_cannot_request(self, arbiter, net):
        with pytest.raises(InvalidStateError, match="Already allowed to speak"):
            arbiter.request_speak(net.id, HOST)

    def test_new_request_after_denial(self, arbiter, net, listener):
        first, _ = arbiter.request_speak(net.id, listener)
        arbiter.deny(net.id, first.id, HOST)
        second, created = arbiter.request_speak(net.id, listener)
        assert created is True
        assert second.id != first.id


class TestApprove:
    def test_promotes_to_unmuted_speaker(self, arbiter, registry, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)

        resolved, participant = arbiter.approve(net.id, request.id, listener, HOST)

        assert resolved.status == RequestStatus.APPROVED
        assert resolved.resolved_by == HOST
        assert resolved.resolved_at is not None
        assert participant.role == Role.SPEAKER
        assert participant.is_muted is False
        assert arbiter.list_pending(net.id) == []

    def test_target_defaults_to_requester(self, arbiter, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)
        _, participant = arbiter.approve(net.id, request.id, None, HOST)
        assert participant.user_id == listener

    def test_mismatched_target_rejected(self, arbiter, registry, net, listener):
        registry.join(net.id, "u2")
        request, _ = arbiter.request_speak(net.id, listener)
        with pytest.raises(ValidationError):
            arbiter.approve(net.id, request.id, "u2", HOST)
        assert arbiter.get(net.id, request.id).status == RequestStatus.PENDING

    def test_non_moderator_cannot_approve(self, arbiter, registry, net, listener):
        registry.join(net.id, "u2")
        request, _ = arbiter.request_speak(net.id, listener)
        with pytest.raises(AuthorizationError):
            arbiter.approve(net.id, request.id, listener, "u2")

    def test_resolved_twice_fails(self, arbiter, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)
        arbiter.approve(net.id, request.id, listener, HOST)
        with pytest.raises(InvalidStateError):
            arbiter.approve(net.id, request.id, listener, HOST)
        with pytest.raises(InvalidStateError):
            arbiter.deny(net.id, request.id, HOST)

    def test_unknown_request(self, arbiter, net):
        with pytest.raises(NotFoundError):
            arbiter.approve(net.id, "missing", None, HOST)

    def test_request_from_other_net_not_found(self, arbiter, registry, net, listener):
        other = registry.create_net(HOST, "Other")
        request, _ = arbiter.request_speak(net.id, listener)
        with pytest.raises(NotFoundError):
            arbiter.approve(other.id, request.id, listener, HOST)

    def test_requester_left_before_approval(self, arbiter, registry, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)
        registry.leave(net.id, listener)
        with pytest.raises(NotFoundError):
            arbiter.approve(net.id, request.id, listener, HOST)
        assert arbiter.get(net.id, request.id).status == RequestStatus.PENDING


class TestSpeakerCap:
    """Tenth speaker fills the net; the next approval is refused."""

    def test_cap_leaves_request_pending(self, store):
        registry = SessionRegistry(store, AuthorizationEngine(max_speakers=10))
        arbiter = SpeakRequestArbiter(registry)
        net = registry.create_net(HOST, "Full House")

        for n in range(9):
            user = f"s{n}"
            registry.join(net.id, user)
            request, _ = arbiter.request_speak(net.id, user)
            arbiter.approve(net.id, request.id, user, HOST)
        assert registry.speaking_count(net.id) == 10

        registry.join(net.id, "late")
        request, _ = arbiter.request_speak(net.id, "late")
        with pytest.raises(CapacityError):
            arbiter.approve(net.id, request.id, "late", HOST)

        assert arbiter.get(net.id, request.id).status == RequestStatus.PENDING
        assert registry.participant(net.id, "late").role == Role.LISTENER
        assert registry.speaking_count(net.id) == 10

    def test_demotion_frees_a_slot(self, store):
        registry = SessionRegistry(store, AuthorizationEngine(max_speakers=2))
        arbiter = SpeakRequestArbiter(registry)
        net = registry.create_net(HOST, "Small")
        for user in ("a", "b"):
            registry.join(net.id, user)
        first, _ = arbiter.request_speak(net.id, "a")
        arbiter.approve(net.id, first.id, "a", HOST)
        second, _ = arbiter.request_speak(net.id, "b")

        with pytest.raises(CapacityError):
            arbiter.approve(net.id, second.id, "b", HOST)

        registry.demote_speaker(net.id, HOST, "a")
        _, participant = arbiter.approve(net.id, second.id, "b", HOST)
        assert participant.role == Role.SPEAKER


class TestDeny:
    def test_deny_keeps_role(self, arbiter, registry, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)
        denied = arbiter.deny(net.id, request.id, HOST)
        assert denied.status == RequestStatus.DENIED
        assert registry.participant(net.id, listener).role == Role.LISTENER

    def test_requests_closed_after_end(self, arbiter, registry, net, listener):
        request, _ = arbiter.request_speak(net.id, listener)
        registry.end(net.id, HOST)
        with pytest.raises(InvalidStateError):
            arbiter.deny(net.id, request.id, HOST)
        with pytest.raises(InvalidStateError):
            arbiter.request_speak(net.id, listener)
