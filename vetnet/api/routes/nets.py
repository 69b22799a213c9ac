# vetnet/api/routes/nets.py

from typing import List

from fastapi import APIRouter, Depends

from vetnet.api.routes.utils import get_state
from vetnet.core.state import AppState
from vetnet.models.models import (
    ActorRequest,
    ApproveSpeakerRequest,
    CreateNetRequest,
    DenySpeakerRequest,
    JoinNetRequest,
    JoinResult,
    MediaConfig,
    MediaCredential,
    Net,
    NetDetail,
    NetMessage,
    NetStatus,
    NetSummary,
    Participant,
    PostMessageRequest,
    SpeakRequest,
    TargetRequest,
)

router = APIRouter(prefix="/api")

# ============================================================================
# NET (AUDIO ROOM) ENDPOINTS
# ============================================================================

@router.get("/nets", response_model=List[NetSummary])
async def list_nets(status: NetStatus = NetStatus.LIVE, state: AppState = Depends(get_state)):
    """
    List nets with the given status (live by default), newest first.

    Each entry carries its active participant count and speaker count.
    """
    return state.registry.list_nets(status)


@router.post("/nets", response_model=Net)
async def create_net(request: CreateNetRequest, state: AppState = Depends(get_state)):
    """
    Create a new net with the caller as host.

    Raises:
        400: name is empty

    Side Effects:
        - "net:created" broadcast to every WebSocket client
    """
    return await state.net_service.create_net(request.user_id, request.name, request.description)


@router.get("/nets/{net_id}", response_model=NetDetail)
async def get_net(net_id: str, state: AppState = Depends(get_state)):
    """
    Get a net with its active participants (host first), pending speak
    requests, speaker count and listener count.

    Raises:
        404: net not found
    """
    return state.registry.get_net(net_id)


@router.post("/nets/{net_id}/join", response_model=JoinResult)
async def join_net(net_id: str, request: JoinNetRequest, state: AppState = Depends(get_state)):
    """
    Join a net as a muted listener, or reclaim host if the caller created it.

    Joining twice returns the existing seat. When audio is configured the
    response also carries a media credential for the caller's role.

    Raises:
        404: net not found
        409: net has ended
    """
    return await state.net_service.join(net_id, request.user_id, request.username)


@router.post("/nets/{net_id}/leave")
async def leave_net(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """Leave a net. Leaving when not in the net is a no-op."""
    participant = await state.net_service.leave(net_id, request.user_id)
    return {"success": True, "left": participant is not None}


@router.post("/nets/{net_id}/end", response_model=Net)
async def end_net(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """
    End a net (host or co-host only). Everyone still inside is marked as left.

    Raises:
        403: caller is not a host
        404: net not found
        409: net already ended
    """
    return await state.net_service.end(net_id, request.user_id)


@router.post("/nets/{net_id}/invite-cohost", response_model=Participant)
async def invite_cohost(net_id: str, request: TargetRequest, state: AppState = Depends(get_state)):
    """Promote a participant to co-host. Only the net's host may do this."""
    return await state.net_service.invite_cohost(net_id, request.user_id, request.target_user_id)


@router.post("/nets/{net_id}/request-speak", response_model=SpeakRequest)
async def request_speak(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """Ask to speak. An already-pending request is returned as is."""
    return await state.net_service.request_speak(net_id, request.user_id)


@router.get("/nets/{net_id}/speak-requests", response_model=List[SpeakRequest])
async def list_speak_requests(net_id: str, state: AppState = Depends(get_state)):
    """Pending speak requests, oldest first."""
    return state.arbiter.list_pending(net_id)


@router.post("/nets/{net_id}/approve-speaker", response_model=SpeakRequest)
async def approve_speaker(net_id: str, request: ApproveSpeakerRequest, state: AppState = Depends(get_state)):
    """
    Approve a speak request (host or co-host only).

    Raises:
        400: maximum speakers reached
        403: caller is not a host or co-host
        409: request already resolved
    """
    return await state.net_service.approve_speaker(
        net_id, request.user_id, request.request_id, request.target_user_id
    )


@router.post("/nets/{net_id}/deny-speaker", response_model=SpeakRequest)
async def deny_speaker(net_id: str, request: DenySpeakerRequest, state: AppState = Depends(get_state)):
    """Deny a speak request (host or co-host only)."""
    return await state.net_service.deny_speaker(net_id, request.user_id, request.request_id)


@router.post("/nets/{net_id}/demote-speaker", response_model=Participant)
async def demote_speaker(net_id: str, request: TargetRequest, state: AppState = Depends(get_state)):
    """Move a speaker back to the listeners (host or co-host only)."""
    return await state.net_service.demote_speaker(net_id, request.user_id, request.target_user_id)


@router.post("/nets/{net_id}/toggle-mute", response_model=Participant)
async def toggle_mute(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """Flip the caller's own mute state. Listeners cannot toggle."""
    return await state.net_service.toggle_mute(net_id, request.user_id)


@router.get("/nets/{net_id}/messages", response_model=List[NetMessage])
async def list_messages(net_id: str, limit: int = 100, state: AppState = Depends(get_state)):
    """Net chat history in posting order."""
    return state.net_service.messages(net_id, limit)


@router.post("/nets/{net_id}/messages", response_model=NetMessage)
async def post_message(net_id: str, request: PostMessageRequest, state: AppState = Depends(get_state)):
    """Post to the net chat. The caller must be in the net."""
    return await state.net_service.post_message(net_id, request.user_id, request.content)


# ============================================================================
# MEDIA (LIVEKIT) ENDPOINTS
# ============================================================================

@router.get("/livekit/config", response_model=MediaConfig)
async def livekit_config(state: AppState = Depends(get_state)):
    """Whether real audio is available. ``enabled: false`` means simulate."""
    return state.media.config()


@router.post("/nets/{net_id}/token", response_model=MediaCredential)
async def media_token(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """
    Issue a media token for the caller's current role.

    Raises:
        404: caller has not joined the net
        503: audio not configured
    """
    return state.media.mint(net_id, request.user_id)


@router.post("/nets/{net_id}/refresh-token", response_model=MediaCredential)
async def refresh_media_token(net_id: str, request: ActorRequest, state: AppState = Depends(get_state)):
    """Re-issue the media token after a role change."""
    return state.media.refresh(net_id, request.user_id)
