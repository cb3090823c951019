from __future__ import annotations

import contextlib
import hmac
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from gate.messaging.encoder import DecodeError, decode
from gate.messaging.protocol import ConnectionProtocol
from gate.messaging.types import ErrorMessage, SessionErrorCode

if TYPE_CHECKING:
    from collections.abc import Iterator

    from gate.messaging.router import MessageRouter

logger = structlog.get_logger()

INVALID_NAME_CLOSE_CODE = 4000
TOO_MANY_BAD_FRAMES_CLOSE_CODE = 4004

_MAX_NAME_LENGTH = 32
# consecutive undecodable frames tolerated before the connection is dropped
_MAX_BAD_FRAMES = 5


@contextlib.contextmanager
def _peer_gone() -> Iterator[None]:
    try:
        yield
    except WebSocketDisconnect:
        raise ConnectionError("peer closed the WebSocket") from None


class WebSocketConnection(ConnectionProtocol):
    def __init__(
        self,
        websocket: WebSocket,
        player_name: str = "",
        *,
        is_operator: bool = False,
        connection_id: str | None = None,
    ) -> None:
        self._websocket = websocket
        self._player_name = player_name
        self._is_operator = is_operator
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def player_name(self) -> str:
        return self._player_name

    @property
    def is_operator(self) -> bool:
        return self._is_operator

    async def send_bytes(self, data: bytes) -> None:
        with _peer_gone():
            await self._websocket.send_bytes(data)

    async def receive_bytes(self) -> bytes:
        with _peer_gone():
            return await self._websocket.receive_bytes()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


def is_operator_token(candidate: str | None, operator_token: str | None) -> bool:
    if not candidate or not operator_token:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), operator_token.encode("utf-8"))


def _valid_name(name: str) -> bool:
    return len(name) <= _MAX_NAME_LENGTH and name.isprintable()


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    operator_token: str | None = None,
) -> None:
    """Serve one client: connect, pump frames into the router, always disconnect."""
    name = websocket.query_params.get("name", "").strip()
    if not _valid_name(name):
        await websocket.close(code=INVALID_NAME_CLOSE_CODE, reason="invalid_name")
        return

    await websocket.accept()
    connection = WebSocketConnection(
        websocket,
        player_name=name,
        is_operator=is_operator_token(websocket.query_params.get("operator"), operator_token),
    )
    logger.info("client connected", connection_id=connection.connection_id, operator=connection.is_operator)
    await router.handle_connect(connection)

    try:
        await _pump(connection, router)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("client disconnected", connection_id=connection.connection_id)
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()


async def _pump(connection: WebSocketConnection, router: MessageRouter) -> None:
    bad_frames = 0
    while True:
        raw = await connection.receive_bytes()
        try:
            data = decode(raw)
        except DecodeError as e:
            bad_frames += 1
            logger.warning("undecodable frame", error=str(e), strikes=bad_frames)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            if bad_frames >= _MAX_BAD_FRAMES:
                logger.info("closing after repeated undecodable frames", connection_id=connection.connection_id)
                await connection.close(code=TOO_MANY_BAD_FRAMES_CLOSE_CODE, reason="too_many_decode_errors")
                return
            continue
        bad_frames = 0
        await router.handle_message(connection, data)
