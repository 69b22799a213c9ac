# vetnet/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from vetnet.api.routes.utils import get_state
from vetnet.core.state import AppState

router = APIRouter()

@router.get("/metrics")
async def get_metrics(state: AppState = Depends(get_state)):
    """
    Fan-out and session metrics.

    Returns:
        dict: Event throughput since start, connection and subscription
              counts, and per-net watcher counts.

    Example Response:
        {
            "events_published": 1240,
            "events_per_second": 0.35,
            "concurrent_connections": 42,
            "live_nets": 3,
            "watchers_by_net": {"uuid-123": 17}
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    published = state.connection_manager.events_published

    if uptime_seconds > 0:
        events_per_second = published / uptime_seconds
    else:
        events_per_second = 0

    watchers = state.connection_manager.get_nets_info()

    return {
        # Statistics
        "events_published": published,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "events_per_second": round(events_per_second, 2),

        # Capacity
        "concurrent_connections": len(state.connection_manager.connection_nets),
        "subscribed_connections": sum(watchers.values()),
        "live_nets": len(state.registry.list_nets("live")),
        "watched_nets": len(watchers),
        "watchers_by_net": watchers,
        "max_speakers_per_net": state.engine.max_speakers,
    }
