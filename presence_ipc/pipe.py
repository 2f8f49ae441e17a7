"""Local channel helpers for the presence IPC transport.

The host listens on a Unix domain socket (POSIX) or a named pipe (Windows)
named ``discord-ipc-<n>`` where ``n`` is an instance id in 0-9.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Iterator, Mapping
from typing import Any

from .errors import (
    IpcConfigurationError,
    IpcConnectionError,
    IpcFrameError,
    IpcTimeout,
    IpcTransportError,
)
from .protocol import (
    HEADER_SIZE,
    Frame,
    FrameType,
    decode_header,
    decode_payload,
    encode_frame,
)

_LOGGER = logging.getLogger(__name__)

PIPE_PREFIX = "discord-ipc-"
WINDOWS_PIPE_ROOT = "\\\\?\\pipe"

_RUNTIME_DIR_VARS = ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP")
_SANDBOX_SUBDIRS = ("", "app/com.discordapp.Discord", "snap.discord")


def pipe_name(instance_id: int) -> str:
    """Return the rendezvous name for an instance id.

    Raises:
        IpcConfigurationError: If instance_id is not an int in 0-9.
    """
    if isinstance(instance_id, bool) or not isinstance(instance_id, int):
        raise IpcConfigurationError(
            f"Instance id must be an integer, got {type(instance_id).__name__}"
        )
    if not 0 <= instance_id <= 9:
        raise IpcConfigurationError(
            f"Instance id must be in range 0-9, got {instance_id}"
        )
    return f"{PIPE_PREFIX}{instance_id}"


def runtime_dir(environ: Mapping[str, str] | None = None) -> str:
    """Resolve the directory the host creates its socket in."""
    env = os.environ if environ is None else environ
    for var in _RUNTIME_DIR_VARS:
        value = env.get(var)
        if value:
            return value
    return "/tmp"


def candidate_pipe_paths(
    instance_id: int,
    *,
    pipe_dir: str | None = None,
    platform: str = sys.platform,
    environ: Mapping[str, str] | None = None,
) -> Iterator[str]:
    """Yield channel addresses to try, most likely first."""
    name = pipe_name(instance_id)

    if platform == "win32":
        yield f"{WINDOWS_PIPE_ROOT}\\{name}"
        return

    base = pipe_dir or runtime_dir(environ)
    for subdir in _SANDBOX_SUBDIRS:
        yield os.path.join(base, subdir, name)


async def _open_windows_pipe(
    path: str,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    transport, _ = await loop.create_pipe_connection(  # type: ignore[attr-defined]
        lambda: protocol, path
    )
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


async def _open_stream(
    path: str,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    if sys.platform == "win32":
        return await _open_windows_pipe(path)
    return await asyncio.open_unix_connection(path)


async def open_pipe(
    instance_id: int,
    *,
    pipe_dir: str | None = None,
    timeout: float = 15.0,
) -> IpcPipe:
    """Open the IPC channel for an instance id.

    Candidate addresses are tried in order; the first that accepts wins.

    Args:
        instance_id: Host instance id (0-9)
        pipe_dir: Override for the POSIX socket directory
        timeout: Time allowed for each open attempt

    Raises:
        IpcTimeout: If an open attempt does not complete in time
        IpcConnectionError: If no candidate address accepts the connection
    """
    last_err: OSError | None = None
    for path in candidate_pipe_paths(instance_id, pipe_dir=pipe_dir):
        try:
            reader, writer = await asyncio.wait_for(_open_stream(path), timeout=timeout)
        except TimeoutError as err:
            raise IpcTimeout(f"Opening {path} timed out") from err
        except OSError as err:
            _LOGGER.debug("Cannot open %s: %s", path, err)
            last_err = err
            continue

        _LOGGER.debug("Opened IPC channel %s", path)
        return IpcPipe(reader, writer, path=path)

    raise IpcConnectionError(
        f"No IPC channel available for instance {instance_id}"
    ) from last_err


class IpcPipe:
    """Framed wrapper around an open IPC stream.

    Writes are serialized so concurrent senders never interleave frame bytes.
    Reads are expected from a single task.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        path: str,
    ) -> None:
        self.path = path
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()

    @property
    def is_closing(self) -> bool:
        """Whether the channel has been closed."""
        return self._writer.is_closing()

    async def send_frame(self, frame_type: FrameType, payload: Any) -> None:
        """Encode and write one frame.

        Raises:
            IpcFrameError: If the payload cannot be encoded
            IpcTransportError: If the channel is closed or the write fails
        """
        await self.write(encode_frame(frame_type, payload))

    async def write(self, data: bytes) -> None:
        """Write one already encoded frame.

        Raises:
            IpcTransportError: If the channel is closed or the write fails
        """
        async with self._write_lock:
            if self._writer.is_closing():
                raise IpcTransportError("IPC channel is closed")
            try:
                self._writer.write(data)
                await self._writer.drain()
            except OSError as err:
                raise IpcTransportError("Failed to write frame") from err

    async def read_frame(self) -> Frame | None:
        """Read the next frame, waiting until one is available.

        Returns:
            The decoded frame, or None on a clean end of stream at a frame
            boundary.

        Raises:
            IpcFrameError: On a truncated or malformed frame
            IpcTransportError: If the underlying read fails
        """
        try:
            header = await self._reader.readexactly(HEADER_SIZE)
        except asyncio.IncompleteReadError as err:
            if not err.partial:
                return None
            raise IpcFrameError(
                f"Truncated frame header: got {len(err.partial)} of {HEADER_SIZE} bytes"
            ) from err
        except OSError as err:
            raise IpcTransportError("Failed to read frame header") from err

        frame_type, length = decode_header(header)
        try:
            body = await self._reader.readexactly(length) if length else b""
        except asyncio.IncompleteReadError as err:
            raise IpcFrameError(
                f"Truncated frame: expected {length} payload bytes, "
                f"got {len(err.partial)}"
            ) from err
        except OSError as err:
            raise IpcTransportError("Failed to read frame payload") from err

        return Frame(frame_type, decode_payload(body))

    async def close(self) -> None:
        """Close the channel."""
        if self._writer.is_closing():
            return
        self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=2.0)
        except TimeoutError:
            _LOGGER.warning("Closing %s timed out", self.path)
        except OSError as err:
            _LOGGER.debug("Error while closing %s: %s", self.path, err)
