"""Shared fakes and helpers for presence_ipc tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from presence_ipc.pipe import IpcPipe
from presence_ipc.protocol import (
    HEADER_SIZE,
    Frame,
    FrameType,
    decode_frame,
    decode_header,
    encode_frame,
)

APPLICATION_ID = 123456789012345678

READY_PAYLOAD: dict[str, Any] = {
    "cmd": "DISPATCH",
    "evt": "READY",
    "nonce": None,
    "data": {"v": 1, "user": {"id": "1"}, "config": {}},
}


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that records written bytes."""

    def __init__(self, reader: asyncio.StreamReader | None = None) -> None:
        self.buffer = bytearray()
        self.events: list[str] = []
        self.closed = False
        self._reader = reader

    def write(self, data: bytes) -> None:
        self.events.append("write")
        self.buffer.extend(data)

    async def drain(self) -> None:
        self.events.append("drain")
        await asyncio.sleep(0)
        self.events.append("drained")

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True
        if self._reader is not None:
            self._reader.feed_eof()

    async def wait_closed(self) -> None:
        return None


def split_frames(data: bytes) -> list[Frame]:
    """Decode every complete frame in a byte buffer."""
    frames: list[Frame] = []
    offset = 0
    while offset < len(data):
        _, length = decode_header(data[offset:])
        frames.append(decode_frame(data[offset:]))
        offset += HEADER_SIZE + length
    return frames


class FakeHost:
    """In-memory host side of an IPC channel.

    Must be created inside a running event loop.
    """

    def __init__(self, path: str = "/tmp/discord-ipc-0") -> None:
        self.reader = asyncio.StreamReader()
        self.writer = FakeWriter(self.reader)
        self.pipe = IpcPipe(self.reader, self.writer, path=path)  # type: ignore[arg-type]

    def reply(self, frame_type: FrameType, payload: Any) -> None:
        """Queue a frame for the client to read."""
        self.reader.feed_data(encode_frame(frame_type, payload))

    def feed_raw(self, data: bytes) -> None:
        self.reader.feed_data(data)

    def hang_up(self) -> None:
        self.reader.feed_eof()

    @property
    def frames(self) -> list[Frame]:
        """Frames the client has written so far."""
        return split_frames(bytes(self.writer.buffer))


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until predicate holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)

