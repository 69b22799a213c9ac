# vetnet/api/routes/health.py

from fastapi import APIRouter, Depends

from vetnet.api.routes.utils import get_state
from vetnet.core.state import AppState

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_state)):
    """
    Health check endpoint.

    Returns current system status, connection counts and net counts.
    Used by container health probes and monitoring.

    Returns:
        dict: Status, connection count, live net count, nets being watched
    """
    return {
        "status": "healthy",
        "connections": len(state.connection_manager.connection_nets),
        "live_nets": len(state.registry.list_nets("live")),
        "watched_nets": len(state.connection_manager.nets),
        "pub_sub": state.settings.PUB_SUB_SERVICE,
        "audio_enabled": state.media.enabled,
    }
