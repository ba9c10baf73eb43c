from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from pairs.logic.manager import GameSessionManager
from pairs.messaging.router import MessageRouter
from pairs.server.settings import PairsServerSettings
from pairs.server.websocket import websocket_endpoint
from pairs.session.manager import SessionManager
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: PairsServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "rooms": session_manager.room_count,
            "active_games": session_manager.active_game_count,
            "connections": session_manager.connection_count,
            "max_rooms": settings.max_rooms,
        },
    )


def create_app(
    settings: PairsServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = PairsServerSettings()

    if session_manager is None:
        session_manager = SessionManager(
            GameSessionManager(),
            resolve_delay_seconds=settings.resolve_delay_seconds,
            max_rooms=settings.max_rooms,
            default_max_players=settings.default_max_players,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws/{player_id}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        session_manager.cancel_pending_resolutions()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("pairs server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = PairsServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
