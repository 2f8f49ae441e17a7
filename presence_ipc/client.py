"""Presence client for the host's local IPC channel.

This module owns the connection to the host application. It handles:
- Connection lifecycle (connect, handshake, disconnect)
- The background read loop
- Request/response correlation by nonce
- Event routing for unsolicited DISPATCH messages

Failures in background processing are never raised to callers; they are
delivered to Errored subscribers and followed by a forced disconnect.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from .callbacks import CallbackRegistry, CommandCallback
from .command import Command, EventType, build_set_activity
from .errors import (
    IpcClientError,
    IpcConfigurationError,
    IpcConnectionError,
    IpcFrameError,
    IpcResponseError,
    IpcTimeout,
)
from .events import EventHook, IpcEnvironment, IpcUser, ReadyEvent, SessionInfo
from .pipe import IpcPipe, open_pipe, pipe_name
from .protocol import RPC_VERSION, Frame, FrameType, build_handshake, encode_frame

_LOGGER = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Lifecycle states of a client connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISPOSED = "disposed"


class PresenceClient:
    """Client for publishing rich presence to a local host application.

    Usage:
        client = PresenceClient(123456789012345678, instance_id=0)
        client.on_ready(handle_ready)
        await client.connect()
        await client.update_presence({"state": "In a match"})
        await client.disconnect()
    """

    def __init__(
        self,
        application_id: int,
        *,
        instance_id: int = 0,
        connect_timeout: float = 15.0,
        pipe_dir: str | None = None,
        protocol_version: int = RPC_VERSION,
    ) -> None:
        """Initialize client.

        Args:
            application_id: Identifier of the application publishing presence
            instance_id: Host instance to connect to (0-9)
            connect_timeout: Time allowed for opening the channel (seconds)
            pipe_dir: Override for the POSIX socket directory
            protocol_version: Version sent in the handshake

        Raises:
            IpcConfigurationError: If either identifier is invalid
        """
        if (
            isinstance(application_id, bool)
            or not isinstance(application_id, int)
            or application_id <= 0
        ):
            raise IpcConfigurationError(f"Invalid application id: {application_id!r}")

        self.name = pipe_name(instance_id)
        self.application_id = application_id
        self.instance_id = instance_id

        self._connect_timeout = connect_timeout
        self._pipe_dir = pipe_dir
        self._protocol_version = protocol_version

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._pipe: IpcPipe | None = None
        self._read_task: asyncio.Task[None] | None = None
        self._connect_lock = asyncio.Lock()

        # Session state
        self._session: SessionInfo | None = None
        self._ready = asyncio.Event()
        self._disposed = asyncio.Event()

        self._callbacks = CallbackRegistry()
        self._callback_tasks: set[asyncio.Task[None]] = set()

        # Notifications
        self._connected_hook = EventHook("Connected")
        self._errored_hook = EventHook("Errored")
        self._disconnected_hook = EventHook("Disconnected")
        self._ready_hook = EventHook("Ready")

        self._event_handlers: dict[str, Callable[[Command], Awaitable[None]]] = {
            EventType.READY: self._handle_ready,
            EventType.ERROR: self._handle_error_event,
        }

    # -------------------------------------------------------------------------
    # Public API: State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the channel is open and the handshake was sent."""
        return self._state is ConnectionState.CONNECTED

    @property
    def session(self) -> SessionInfo | None:
        """Session metadata from the host's READY event, once received."""
        return self._session

    @property
    def protocol_version(self) -> int | None:
        return self._session.protocol_version if self._session else None

    @property
    def current_user(self) -> IpcUser | None:
        return self._session.current_user if self._session else None

    @property
    def environment(self) -> IpcEnvironment | None:
        return self._session.environment if self._session else None

    @property
    def pending_requests(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._callbacks)

    # -------------------------------------------------------------------------
    # Public API: Notifications
    # -------------------------------------------------------------------------

    def on_connected(
        self, callback: Callable[[], Awaitable[None] | None]
    ) -> Callable[[], None]:
        """Register callback for a successful connect."""
        return self._connected_hook.subscribe(callback)

    def on_errored(
        self, callback: Callable[[Exception], Awaitable[None] | None]
    ) -> Callable[[], None]:
        """Register callback for connection, protocol and host errors.

        Callback receives the exception describing the failure.
        """
        return self._errored_hook.subscribe(callback)

    def on_disconnected(
        self, callback: Callable[[], Awaitable[None] | None]
    ) -> Callable[[], None]:
        """Register callback for connection teardown."""
        return self._disconnected_hook.subscribe(callback)

    def on_ready(
        self, callback: Callable[[ReadyEvent], Awaitable[None] | None]
    ) -> Callable[[], None]:
        """Register callback for the host's session-ready event."""
        return self._ready_hook.subscribe(callback)

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the channel, send the handshake and start reading.

        Notifications are fired after the connect lock is released, so
        subscribers may call ``connect()`` or send from their handlers.

        Returns:
            True if connected, False if the attempt failed (the failure is
            delivered to Errored subscribers).
        """
        failure: IpcClientError | None = None
        torn_down = False
        async with self._connect_lock:
            if self._state is ConnectionState.CONNECTED:
                return True
            try:
                connected = await self._connect()
            except IpcClientError as err:
                _LOGGER.warning("[%s] Connection failed: %s", self.name, err)
                failure, connected = err, False
                torn_down = await self._teardown()

        if failure is not None:
            await self._errored_hook.fire(failure)
            if torn_down:
                await self._disconnected_hook.fire()
            return False
        if connected:
            await self._connected_hook.fire()
        return connected

    async def _connect(self) -> bool:
        """Open and handshake under the connect lock.

        Returns:
            False if ``disconnect()`` ran while the channel was opening.

        Raises:
            IpcClientError: If the open or the handshake fails
        """
        self._set_state(ConnectionState.CONNECTING)
        self._session = None
        self._ready.clear()
        self._disposed.clear()

        _LOGGER.info("[%s] Connecting", self.name)
        pipe = await open_pipe(
            self.instance_id,
            pipe_dir=self._pipe_dir,
            timeout=self._connect_timeout,
        )

        if self._state is not ConnectionState.CONNECTING:
            _LOGGER.debug("[%s] Disconnected while opening channel", self.name)
            await pipe.close()
            return False

        self._pipe = pipe
        await pipe.send_frame(
            FrameType.HANDSHAKE,
            build_handshake(self.application_id, self._protocol_version),
        )

        _LOGGER.debug("[%s] Handshake sent", self.name)
        self._read_task = asyncio.create_task(self._read_loop(pipe))
        self._set_state(ConnectionState.CONNECTED)
        _LOGGER.info("[%s] Connected via %s", self.name, pipe.path)
        return True

    async def disconnect(self) -> None:
        """Close the channel. Only the first call performs teardown."""
        if await self._teardown():
            await self._disconnected_hook.fire()

    async def _teardown(self) -> bool:
        """Dispose the connection without notifying.

        Returns:
            True if this call performed the teardown.
        """
        if self._state is ConnectionState.DISPOSED:
            return False

        self._set_state(ConnectionState.DISPOSED)
        self._disposed.set()

        pipe, self._pipe = self._pipe, None
        task, self._read_task = self._read_task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()

        if pipe is not None:
            await pipe.close()

        _LOGGER.info("[%s] Disconnected", self.name)
        return True

    async def _disconnect_pipe(self, pipe: IpcPipe) -> None:
        """Disconnect only if ``pipe`` is still the live channel."""
        if self._pipe is pipe:
            await self.disconnect()

    async def wait_until_ready(self, timeout: float | None = None) -> SessionInfo:
        """Wait for the host to acknowledge the handshake with READY.

        Raises:
            IpcTimeout: If READY does not arrive within timeout
            IpcConnectionError: If the connection is disposed first
        """
        if self._session is not None:
            return self._session

        ready = asyncio.create_task(self._ready.wait())
        disposed = asyncio.create_task(self._disposed.wait())
        try:
            await asyncio.wait(
                {ready, disposed},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            ready.cancel()
            disposed.cancel()

        if self._session is not None:
            return self._session
        if self._disposed.is_set():
            raise IpcConnectionError("Connection closed before the host was ready")
        raise IpcTimeout("Timed out waiting for the host to become ready")

    # -------------------------------------------------------------------------
    # Public API: Sending
    # -------------------------------------------------------------------------

    async def send(self, frame_type: FrameType, payload: Any) -> bool:
        """Write a frame, connecting first if needed.

        The payload is encoded before any connection attempt. A payload that
        cannot be encoded is reported to Errored as ``IpcFrameError`` and the
        connection is left as it was.

        Returns:
            True if the frame was written. False if the payload could not be
            encoded, no connection could be established or the write failed;
            all are delivered to Errored subscribers.
        """
        try:
            data = encode_frame(frame_type, payload)
        except IpcFrameError as err:
            _LOGGER.warning(
                "[%s] Dropping %s frame: %s", self.name, frame_type.name, err
            )
            await self._errored_hook.fire(err)
            return False

        if self._state is not ConnectionState.CONNECTED:
            if not await self.connect():
                return False

        pipe = self._pipe
        if pipe is None:
            return False

        try:
            await pipe.write(data)
        except IpcClientError as err:
            _LOGGER.warning("[%s] Failed to send frame: %s", self.name, err)
            await self._errored_hook.fire(err)
            await self._disconnect_pipe(pipe)
            return False

        _LOGGER.debug("[%s] >> %s %s", self.name, frame_type.name, payload)
        return True

    async def send_command(
        self,
        frame_type: FrameType,
        command: Command,
        callback: CommandCallback | None = None,
    ) -> bool:
        """Send a command, optionally registering a response callback.

        The callback is registered before the frame is written so a fast
        response always finds it. It is invoked once with (client, response).
        """
        if callback is not None:
            if not command.nonce:
                raise ValueError("Commands with a callback require a nonce")
            self._callbacks.register(command.nonce, callback)

        sent = await self.send(frame_type, command.to_payload())
        if not sent and callback is not None and command.nonce:
            self._callbacks.discard(command.nonce)
        return sent

    async def update_presence(
        self,
        activity: dict[str, Any] | None,
        pid: int | None = None,
        *,
        callback: CommandCallback | None = None,
    ) -> bool:
        """Publish an activity for a process (default: this process)."""
        return await self.send_command(
            FrameType.MESSAGE, build_set_activity(activity, pid=pid), callback
        )

    async def clear_presence(self, pid: int | None = None) -> bool:
        """Clear the activity for a process (default: this process)."""
        return await self.update_presence(None, pid)

    # -------------------------------------------------------------------------
    # Internal: State Machine
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if self._state is not state:
            _LOGGER.debug("[%s] State: %s → %s", self.name, self._state, state)
            self._state = state

    # -------------------------------------------------------------------------
    # Internal: Read Loop
    # -------------------------------------------------------------------------

    async def _read_loop(self, pipe: IpcPipe) -> None:
        """Read and route frames until the channel closes."""
        frame_count = 0
        try:
            while self._pipe is pipe:
                frame = await pipe.read_frame()
                if frame is None:
                    _LOGGER.info("[%s] Channel closed by host", self.name)
                    break

                frame_count += 1
                _LOGGER.debug(
                    "[%s] << %s %s", self.name, frame.type.name, frame.payload
                )

                if frame.type is FrameType.MESSAGE:
                    await self._handle_message(frame)
                elif frame.type is FrameType.CLOSE:
                    payload = frame.payload if isinstance(frame.payload, dict) else {}
                    _LOGGER.info(
                        "[%s] Host closed connection: %s (%s)",
                        self.name,
                        payload.get("message"),
                        payload.get("code"),
                    )
                    break
                elif frame.type is FrameType.PING:
                    await pipe.send_frame(FrameType.PONG, frame.payload)

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Read loop cancelled (%d frames)", self.name, frame_count
            )
            raise
        except IpcClientError as err:
            _LOGGER.warning("[%s] Read loop error: %s", self.name, err)
            if self._pipe is pipe:
                await self._errored_hook.fire(err)
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self.name, err)
            if self._pipe is pipe:
                await self._errored_hook.fire(err)
        finally:
            await self._disconnect_pipe(pipe)

    async def _handle_message(self, frame: Frame) -> None:
        """Route a MESSAGE to its pending callback or to the event router.

        Callbacks run in their own task so a callback may await further
        responses without blocking the read loop.
        """
        command = Command.from_payload(frame.payload)

        if command.nonce:
            callback = self._callbacks.pop(command.nonce)
            if callback is not None:
                task = asyncio.create_task(self._invoke_callback(callback, command))
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_tasks.discard)
                return

        await self._route_event(command)

    async def _invoke_callback(
        self, callback: CommandCallback, command: Command
    ) -> None:
        try:
            result = callback(self, command)
            if inspect.isawaitable(result):
                await result
        except Exception as err:
            _LOGGER.exception(
                "[%s] Response callback error for %s: %s",
                self.name,
                command.nonce,
                err,
            )

    # -------------------------------------------------------------------------
    # Internal: Event Router
    # -------------------------------------------------------------------------

    async def _route_event(self, command: Command) -> None:
        if not command.evt:
            _LOGGER.debug(
                "[%s] Unmatched %s message (nonce=%s)",
                self.name,
                command.cmd,
                command.nonce,
            )
            return

        handler = self._event_handlers.get(command.evt)
        if handler is None:
            _LOGGER.debug("[%s] Ignoring event: %s", self.name, command.evt)
            return
        await handler(command)

    async def _handle_ready(self, command: Command) -> None:
        """Capture session metadata and notify Ready subscribers."""
        if self._session is not None:
            _LOGGER.warning("[%s] Duplicate READY ignored", self.name)
            return

        session = SessionInfo.from_ready(command.data or {})
        self._session = session
        self._ready.set()

        user_id = session.current_user.id if session.current_user else None
        _LOGGER.info(
            "[%s] Ready (protocol v%s, user %s)",
            self.name,
            session.protocol_version,
            user_id,
        )
        await self._ready_hook.fire(
            ReadyEvent(
                client=self,
                version=session.protocol_version,
                user=session.current_user,
                config=session.environment,
            )
        )

    async def _handle_error_event(self, command: Command) -> None:
        """Deliver a host-reported error to Errored subscribers."""
        data = command.data or {}
        code = data.get("code")
        error = IpcResponseError(
            code if isinstance(code, int) else None,
            str(data.get("message") or "Host reported an error"),
        )
        _LOGGER.warning("[%s] Host error %s: %s", self.name, error.code, error)
        await self._errored_hook.fire(error)
