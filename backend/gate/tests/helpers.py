"""Shared constants and builders for gate tests."""

from datetime import datetime

from gate.messaging.encoder import decode, encode

# 10:30 local time; the default rotation hour (12) is still ahead today.
NOW = datetime(2025, 6, 1, 10, 30, 0)  # noqa: DTZ001
TEST_KEY = "Abc123"


def command(text: str) -> dict:
    return {"type": "command", "text": text}


def move(origin: tuple[float, float, float], target: tuple[float, float, float]) -> dict:
    return {"type": "move", "from": list(origin), "to": list(target)}


def send_ws(ws, data: dict) -> None:
    """Send a MessagePack-encoded message over a test WebSocket."""
    ws.send_bytes(encode(data))


def recv_ws(ws) -> dict:
    """Receive and decode a MessagePack message from a test WebSocket."""
    return decode(ws.receive_bytes())
