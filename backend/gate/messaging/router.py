from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from gate.keyauth.config import PERMISSION_RELOAD, PERMISSION_STATS, PERMISSION_STATS_CLEAR
from gate.keyauth.gate import VERIFY_REMINDER
from gate.messaging.types import (
    CommandMessage,
    ErrorMessage,
    MoveMessage,
    MoveRejectedMessage,
    PingMessage,
    PongMessage,
    SessionErrorCode,
    parse_client_message,
)

if TYPE_CHECKING:
    from gate.keyauth.commands import KeyCommands
    from gate.keyauth.gate import AuthGate
    from gate.messaging.protocol import ConnectionProtocol
    from gate.session.manager import SessionManager

logger = structlog.get_logger()

OPERATOR_PERMISSIONS = frozenset({PERMISSION_RELOAD, PERMISSION_STATS, PERMISSION_STATS_CLEAR})


class MessageRouter:
    """
    Translate connection events into gate calls.

    Holds no state of its own and can be tested without real WebSocket
    connections.
    """

    def __init__(self, gate: AuthGate, session_manager: SessionManager, commands: KeyCommands) -> None:
        self._gate = gate
        self._session_manager = session_manager
        self._commands = commands

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        structlog.contextvars.bind_contextvars(session_id=connection.connection_id)
        self._session_manager.register_connection(connection)
        await self._gate.on_connect(
            connection.connection_id,
            privileged=connection.is_operator,
            name=connection.player_name,
            permissions=OPERATOR_PERMISSIONS if connection.is_operator else frozenset(),
        )

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._gate.on_disconnect(connection.connection_id)
        self._session_manager.unregister_connection(connection)

    async def handle_message(self, connection: ConnectionProtocol, raw_message: dict[str, Any]) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message", error=str(e))
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        if isinstance(message, CommandMessage):
            await self._handle_command(connection, message)
        elif isinstance(message, MoveMessage):
            await self._handle_move(connection, message)
        elif isinstance(message, PingMessage):
            await connection.send_message(PongMessage().model_dump())

    async def _handle_command(self, connection: ConnectionProtocol, message: CommandMessage) -> None:
        session_id = connection.connection_id
        if not self._gate.command_guard(session_id, message.text):
            await self._session_manager.send_chat(session_id, VERIFY_REMINDER)
            return
        await self._commands.dispatch(session_id, message.text)

    async def _handle_move(self, connection: ConnectionProtocol, message: MoveMessage) -> None:
        if self._gate.movement_guard(connection.connection_id, message.origin, message.target):
            return
        await connection.send_message(MoveRejectedMessage(position=message.origin).model_dump())
        await self._session_manager.send_chat(connection.connection_id, VERIFY_REMINDER)
