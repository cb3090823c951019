"""Transport-independent client connection."""

from abc import ABC, abstractmethod
from typing import Any

from gate.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """A connected game client.

    Lets the router and session manager run against an in-memory
    connection in tests instead of a real WebSocket.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @property
    @abstractmethod
    def player_name(self) -> str: ...

    @property
    @abstractmethod
    def is_operator(self) -> bool:
        """Whether the client proved operator rights when connecting."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        return decode(await self.receive_bytes())
