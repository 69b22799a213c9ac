# vetnet/models/models.py
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    HOST = "host"
    CO_HOST = "co-host"
    SPEAKER = "speaker"
    LISTENER = "listener"


class NetStatus(str, Enum):
    LIVE = "live"
    ENDED = "ended"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class EventType(str, Enum):
    NET_CREATED = "net:created"
    NET_ENDED = "net:ended"
    PARTICIPANT_JOINED = "net:participant:join"
    PARTICIPANT_LEFT = "net:participant:leave"
    PARTICIPANT_ROLE = "net:participant:role"
    PARTICIPANT_MUTE = "net:participant:mute"
    REQUEST_CREATED = "net:request:new"
    REQUEST_DENIED = "net:request:denied"
    MESSAGE_POSTED = "net:message"


# Display order for participant lists
ROLE_ORDER = {Role.HOST: 1, Role.CO_HOST: 2, Role.SPEAKER: 3, Role.LISTENER: 4}


# ============================================================================
# RECORDS
# ============================================================================

class Net(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    host_id: str
    status: NetStatus = NetStatus.LIVE
    created_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.status == NetStatus.LIVE


class Participant(BaseModel):
    net_id: str
    user_id: str
    username: str
    role: Role = Role.LISTENER
    is_muted: bool = True
    joined_at: datetime = Field(default_factory=utcnow)
    left_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class SpeakRequest(BaseModel):
    id: str
    net_id: str
    user_id: str
    status: RequestStatus = RequestStatus.PENDING
    requested_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class NetMessage(BaseModel):
    id: str
    net_id: str
    user_id: str
    username: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


# ============================================================================
# VIEWS
# ============================================================================

class NetSummary(Net):
    participant_count: int = 0
    speaker_count: int = 0


class NetDetail(Net):
    participants: List[Participant] = []
    pending_requests: List[SpeakRequest] = []
    speaker_count: int = 0
    listener_count: int = 0


class MediaCredential(BaseModel):
    token: str
    url: str
    room: str
    identity: str
    can_publish: bool
    can_subscribe: bool = True


class JoinResult(BaseModel):
    participant: Participant
    already_joined: bool = False
    host_reclaimed: bool = False
    credential: Optional[MediaCredential] = None


class MediaConfig(BaseModel):
    enabled: bool
    url: str = ""


class Event(BaseModel):
    """Envelope delivered to sockets. ``net_id`` is absent for global broadcasts."""

    event_type: str
    payload: Any = None
    net_id: Optional[str] = None

    def to_wire(self) -> dict:
        message = {"eventType": self.event_type, "payload": self.payload}
        if self.net_id is not None:
            message["netId"] = self.net_id
        return message


# ============================================================================
# REQUEST BODIES
# ============================================================================

class CreateNetRequest(BaseModel):
    user_id: str
    name: str
    description: Optional[str] = None


class ActorRequest(BaseModel):
    user_id: str


class JoinNetRequest(BaseModel):
    user_id: str
    username: Optional[str] = None


class TargetRequest(BaseModel):
    user_id: str
    target_user_id: str


class ApproveSpeakerRequest(BaseModel):
    user_id: str
    request_id: str
    target_user_id: Optional[str] = None


class DenySpeakerRequest(BaseModel):
    user_id: str
    request_id: str


class PostMessageRequest(BaseModel):
    user_id: str
    content: str

