# vetnet/main.py

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vetnet.core.logging import setup_logging, get_logger
from vetnet.core.state import AppState
from vetnet.api.routes import root, health, metrics, nets
from vetnet.api.routes.utils import register_error_handlers
from vetnet.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """
    Build the FastAPI app around an AppState (a fresh one by default).

    Tests pass their own AppState to get an isolated store and connection map.
    """
    app = FastAPI(title="VETNET Nets")
    app.state.vetnet = state or AppState()

    # CORS (relaxed for the mock platform)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(nets.router)

    # WebSocket routes
    app.include_router(websocket_module.router)

    @app.on_event("startup")
    async def startup_event():
        app_state: AppState = app.state.vetnet
        logger.info("🚀 Application starting - pub/sub: %s", app_state.settings.PUB_SUB_SERVICE)

        if not app_state.media.enabled:
            logger.warning("LiveKit credentials not set - audio will be simulated")

        if app_state.redis_service is not None:
            await app_state.redis_service.connect()
            # Start subscriber in background
            app.state.redis_listener = asyncio.create_task(app_state.redis_service.listen())

    @app.on_event("shutdown")
    async def on_shutdown():
        app_state: AppState = app.state.vetnet
        listener = getattr(app.state, "redis_listener", None)
        if listener is not None:
            listener.cancel()
        if app_state.redis_service is not None:
            await app_state.redis_service.close()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("vetnet.main:app", host="0.0.0.0", port=8000)
