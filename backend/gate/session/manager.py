"""Live connections and message delivery for the authentication gate."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog

from gate.keyauth.gate import KICK_REASON
from gate.messaging.types import ChatNotice, TitleNotice

if TYPE_CHECKING:
    from gate.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

AUTH_TIMEOUT_CLOSE_CODE = 4001
NORMAL_CLOSE_CODE = 1000

# Connection errors raised by a peer that is already gone.
_SEND_ERRORS = (RuntimeError, OSError, ConnectionError)


class SessionManager:
    """Map session ids to connections and deliver gate output to them.

    Sending to a connection that has already dropped is not an error:
    the disconnect handler will remove it shortly.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}  # connection_id -> connection

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def get_connection(self, session_id: str) -> ConnectionProtocol | None:
        return self._connections.get(session_id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send_chat(self, session_id: str, lines: list[str]) -> None:
        await self._send(session_id, ChatNotice(lines=lines).model_dump())

    async def send_title(self, session_id: str, title: str, subtitle: str = "") -> None:
        await self._send(session_id, TitleNotice(title=title, subtitle=subtitle).model_dump())

    async def broadcast(self, lines: list[str]) -> None:
        payload = ChatNotice(lines=lines).model_dump()
        for session_id in list(self._connections):
            await self._send(session_id, payload)

    async def disconnect(self, session_id: str, reason: str) -> None:
        connection = self._connections.pop(session_id, None)
        if connection is None:
            return
        code = AUTH_TIMEOUT_CLOSE_CODE if reason == KICK_REASON else NORMAL_CLOSE_CODE
        logger.info("closing connection", session_id=session_id, reason=reason)
        with contextlib.suppress(*_SEND_ERRORS):
            await connection.close(code=code, reason=reason)

    async def close_all(self) -> None:
        for session_id in list(self._connections):
            await self.disconnect(session_id, "server_shutdown")

    async def _send(self, session_id: str, payload: dict) -> None:
        connection = self._connections.get(session_id)
        if connection is None:
            return
        try:
            await connection.send_message(payload)
        except _SEND_ERRORS:
            logger.debug("send to closed connection dropped", session_id=session_id)
