"""Frame codec for the presence IPC wire protocol.

Every frame on the channel is an 8-byte header followed by a UTF-8 JSON body:

    [type: uint32 LE][length: uint32 LE][payload: length bytes]

Type codes are assigned by the host and must not be renumbered.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .errors import IpcFrameError

RPC_VERSION = 1

HEADER = struct.Struct("<II")
HEADER_SIZE = HEADER.size

MAX_PAYLOAD_SIZE = 16 * 1024 * 1024


class FrameType(IntEnum):
    """Frame type codes as assigned by the host."""

    HANDSHAKE = 0
    MESSAGE = 1
    CLOSE = 2
    PING = 3
    PONG = 4


@dataclass(frozen=True, slots=True)
class Frame:
    """One decoded frame."""

    type: FrameType
    payload: Any


def encode_frame(frame_type: FrameType, payload: Any) -> bytes:
    """Encode a payload into a length-prefixed frame.

    Raises:
        IpcFrameError: If the payload is not JSON serializable.
    """
    try:
        body = json.dumps(
            payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as err:
        raise IpcFrameError("Frame payload is not JSON serializable") from err
    return HEADER.pack(int(frame_type), len(body)) + body


def decode_header(data: bytes) -> tuple[FrameType, int]:
    """Read the frame type and declared payload length from a header."""
    if len(data) < HEADER_SIZE:
        raise IpcFrameError(
            f"Frame header requires {HEADER_SIZE} bytes, got {len(data)}"
        )

    code, length = HEADER.unpack_from(data)
    try:
        frame_type = FrameType(code)
    except ValueError as err:
        raise IpcFrameError(f"Unknown frame type code {code}") from err

    if length > MAX_PAYLOAD_SIZE:
        raise IpcFrameError(
            f"Frame length {length} exceeds maximum of {MAX_PAYLOAD_SIZE} bytes"
        )
    return frame_type, length


def decode_payload(body: bytes) -> Any:
    """Parse a frame body as UTF-8 JSON."""
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as err:
        raise IpcFrameError("Frame payload is not valid JSON") from err


def decode_frame(data: bytes) -> Frame:
    """Decode a single frame from the start of ``data``.

    Bytes past the declared payload length are ignored.

    Raises:
        IpcFrameError: On a short header, unknown type, truncated payload or
            invalid JSON.
    """
    frame_type, length = decode_header(data)
    body = data[HEADER_SIZE : HEADER_SIZE + length]
    if len(body) < length:
        raise IpcFrameError(
            f"Truncated frame: expected {length} payload bytes, got {len(body)}"
        )
    return Frame(frame_type, decode_payload(body))


def build_handshake(client_id: int, version: int = RPC_VERSION) -> dict[str, Any]:
    """Construct the handshake payload identifying the connecting application."""
    return {"v": version, "client_id": str(client_id)}
