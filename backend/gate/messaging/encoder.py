"""MessagePack frames for the gate WebSocket.

Every frame is a single map. Client frames carry a command line, a move
or a ping, so the limits below are far tighter than a general codec needs.
"""

from typing import Any

import msgpack


class DecodeError(Exception):
    """Inbound frame is oversized, malformed or not a map."""


MAX_BUFFER_LEN = 16 * 1024
MAX_STR_LEN = 4 * 1024

_UNPACK_LIMITS = {
    "max_str_len": MAX_STR_LEN,
    "max_bin_len": 4 * 1024,
    "max_array_len": 64,
    "max_map_len": 32,
    "max_ext_len": 256,
}


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"frame of {len(data)} bytes is too large (limit {MAX_BUFFER_LEN})")
    try:
        frame = msgpack.unpackb(data, raw=False, **_UNPACK_LIMITS)
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"not a MessagePack frame: {e}") from e
    if not isinstance(frame, dict):
        raise DecodeError(f"expected map, got {type(frame).__name__}")
    return frame
