# vetnet/api/routes/utils.py

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vetnet.core.errors import NetError
from vetnet.core.state import AppState

logger = logging.getLogger(__name__)


def get_state(request: Request) -> AppState:
    """Dependency returning the AppState wired into this app."""
    return request.app.state.vetnet


async def net_error_handler(request: Request, exc: NetError) -> JSONResponse:
    """
    Turn business-rule failures into JSON responses.

    Body:
        {"error": "<human readable reason>", "kind": "<error class name>"}
    """
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NetError, net_error_handler)
