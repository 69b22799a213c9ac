# vetnet/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "VETNET Nets - live audio rooms",
        "version": "1.0",
        "features": ["nets", "speak_requests", "co_hosts", "net_chat", "realtime_events", "livekit_tokens"],
        "endpoints": {
            "websocket": "/ws",
            "nets": "/api/nets",
            "livekit": "/api/livekit/config",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
