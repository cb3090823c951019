from __future__ import annotations

import contextlib
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.responses import FileResponse, JSONResponse
from starlette.routing import Route, WebSocketRoute

from gate.keyauth.clock import HUMAN_TIME_FORMAT
from gate.keyauth.commands import KeyCommands
from gate.keyauth.config import ConfigStore
from gate.keyauth.gate import AuthGate
from gate.keyauth.scheduler import RotationScheduler
from gate.messaging.router import MessageRouter
from gate.server.settings import GateServerSettings
from gate.server.websocket import websocket_endpoint
from gate.session.manager import SessionManager
from gate.web.artifact import LocalArtifactPublisher, artifact_paths
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from gate.keyauth.host import ArtifactSink


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    gate: AuthGate = request.app.state.gate
    return JSONResponse(
        {
            "status": "ok",
            "connected_sessions": gate.registry.connected_count,
            "verified_sessions": gate.registry.authenticated_count,
            "next_rotation": gate.secret.next_rotation.strftime(HUMAN_TIME_FORMAT),
            "auto_update": gate.config.auto_update.enabled,
        },
    )


def create_app(
    settings: GateServerSettings | None = None,
    publisher: ArtifactSink | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GateServerSettings()

    config_store = ConfigStore(settings.config_path)
    config = config_store.load()

    session_manager = SessionManager()
    gate = AuthGate(
        config,
        session_manager,
        publisher or LocalArtifactPublisher(),
        config_store=config_store,
        welcome_delay_seconds=settings.welcome_delay_seconds,
    )
    message_router = MessageRouter(gate, session_manager, KeyCommands(gate, session_manager))
    scheduler = RotationScheduler(
        gate,
        check_interval=settings.rotation_check_interval_seconds,
        republish_interval=settings.republish_interval_seconds,
    )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, operator_token=settings.operator_token)

    # Only the published files are served, from the web path configured at startup.
    published = artifact_paths(Path(config.auto_update.web_path))

    async def web_file(request: Request) -> FileResponse:
        path = published.get(request.path_params["name"])
        if path is None or not path.is_file():
            raise HTTPException(status_code=404)
        return FileResponse(path)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
        Route("/web/{name}", web_file, methods=["GET"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        await gate.publish()
        scheduler.start()
        logger.info(
            "gate server ready",
            next_rotation=gate.secret.next_rotation.strftime(HUMAN_TIME_FORMAT),
            auto_update=gate.config.auto_update.enabled,
        )
        try:
            yield
        finally:
            await scheduler.stop()
            gate.cancel_all_timers()
            await session_manager.close_all()
            logger.info("gate server stopped")

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.settings = settings
    app.state.gate = gate
    app.state.session_manager = session_manager
    app.state.scheduler = scheduler
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory gate.server.app:get_app)."""
    settings = GateServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
