from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

_COORDINATE = Annotated[float, Field(allow_inf_nan=False)]


class ClientMessageType(StrEnum):
    COMMAND = "command"
    MOVE = "move"
    PING = "ping"


class ServerMessageType(StrEnum):
    CHAT = "chat"
    TITLE = "title"
    MOVE_REJECTED = "move_rejected"
    ERROR = "session_error"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"


class CommandMessage(BaseModel):
    type: Literal[ClientMessageType.COMMAND] = ClientMessageType.COMMAND
    text: str = Field(min_length=1, max_length=256)

    @field_validator("text")
    @classmethod
    def _validate_text(cls, v: str) -> str:
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("text must not contain control characters")
        return v


class MoveMessage(BaseModel):
    type: Literal[ClientMessageType.MOVE] = ClientMessageType.MOVE
    origin: tuple[_COORDINATE, _COORDINATE, _COORDINATE] = Field(alias="from")
    target: tuple[_COORDINATE, _COORDINATE, _COORDINATE] = Field(alias="to")


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = CommandMessage | MoveMessage | PingMessage


class ChatNotice(BaseModel):
    type: Literal[ServerMessageType.CHAT] = ServerMessageType.CHAT
    lines: list[str]


class TitleNotice(BaseModel):
    type: Literal[ServerMessageType.TITLE] = ServerMessageType.TITLE
    title: str
    subtitle: str = ""


class MoveRejectedMessage(BaseModel):
    """Sent when a move is refused; the client snaps back to ``position``."""

    type: Literal[ServerMessageType.MOVE_REJECTED] = ServerMessageType.MOVE_REJECTED
    position: tuple[float, float, float]


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: SessionErrorCode
    message: str


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG


_client_adapter = TypeAdapter(Annotated[ClientMessage, Field(discriminator="type")])


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage."""
    return _client_adapter.validate_python(data)
