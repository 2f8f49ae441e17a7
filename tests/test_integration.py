"""End-to-end test against a host listening on a real Unix socket."""

from __future__ import annotations

import asyncio
import shutil
import sys
import tempfile
from typing import Any

import pytest

from presence_ipc import PresenceClient
from presence_ipc.client import ConnectionState
from presence_ipc.protocol import (
    HEADER_SIZE,
    Frame,
    FrameType,
    decode_header,
    decode_payload,
    encode_frame,
)

from .conftest import APPLICATION_ID, READY_PAYLOAD, wait_until

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="Unix domain sockets only"
)


async def read_frame(reader: asyncio.StreamReader) -> Frame:
    frame_type, length = decode_header(await reader.readexactly(HEADER_SIZE))
    return Frame(frame_type, decode_payload(await reader.readexactly(length)))


@pytest.mark.asyncio
async def test_session_over_unix_socket():
    """Test handshake, READY, a correlated SET_ACTIVITY and host close."""
    # Short directory: socket paths are limited to ~100 bytes.
    socket_dir = tempfile.mkdtemp(prefix="pipc", dir="/tmp")
    received: list[Frame] = []

    async def host(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        received.append(await read_frame(reader))
        writer.write(encode_frame(FrameType.MESSAGE, READY_PAYLOAD))
        await writer.drain()

        request = await read_frame(reader)
        received.append(request)
        writer.write(
            encode_frame(
                FrameType.MESSAGE,
                {
                    "cmd": "SET_ACTIVITY",
                    "nonce": request.payload["nonce"],
                    "data": request.payload["args"]["activity"],
                },
            )
        )
        writer.write(encode_frame(FrameType.CLOSE, {"code": 1000, "message": "bye"}))
        await writer.drain()

        await reader.read()
        writer.close()

    server = await asyncio.start_unix_server(host, path=f"{socket_dir}/discord-ipc-0")
    try:
        client = PresenceClient(APPLICATION_ID, pipe_dir=socket_dir)
        responses: list[Any] = []
        disconnected = asyncio.Event()
        client.on_disconnected(disconnected.set)

        assert await client.connect() is True
        session = await client.wait_until_ready(timeout=5.0)
        assert session.protocol_version == 1

        activity = {"state": "Testing", "details": "Integration"}
        await client.update_presence(
            activity, callback=lambda _client, response: responses.append(response)
        )
        await asyncio.wait_for(disconnected.wait(), timeout=5.0)
        await wait_until(lambda: len(responses) == 1)

        assert received[0] == Frame(
            FrameType.HANDSHAKE, {"v": 1, "client_id": str(APPLICATION_ID)}
        )
        assert received[1].payload["cmd"] == "SET_ACTIVITY"
        assert len(responses) == 1
        assert responses[0].data == activity
        assert client.state is ConnectionState.DISPOSED
        assert client.pending_requests == 0
    finally:
        server.close()
        await server.wait_closed()
        shutil.rmtree(socket_dir, ignore_errors=True)
