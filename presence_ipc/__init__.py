"""Client for publishing rich presence over a host application's local IPC channel."""

__version__ = "0.1.0"

from .callbacks import CallbackRegistry, CommandCallback
from .client import ConnectionState, PresenceClient
from .command import Command, CommandType, EventType, build_set_activity
from .errors import (
    IpcClientError,
    IpcConfigurationError,
    IpcConnectionError,
    IpcFrameError,
    IpcProtocolError,
    IpcResponseError,
    IpcTimeout,
    IpcTransportError,
)
from .events import EventHook, IpcEnvironment, IpcUser, ReadyEvent, SessionInfo
from .pipe import IpcPipe, candidate_pipe_paths, open_pipe, pipe_name
from .protocol import (
    RPC_VERSION,
    Frame,
    FrameType,
    build_handshake,
    decode_frame,
    encode_frame,
)

__all__ = [
    "RPC_VERSION",
    "CallbackRegistry",
    "Command",
    "CommandCallback",
    "CommandType",
    "ConnectionState",
    "EventHook",
    "EventType",
    "Frame",
    "FrameType",
    "IpcClientError",
    "IpcConfigurationError",
    "IpcConnectionError",
    "IpcEnvironment",
    "IpcFrameError",
    "IpcPipe",
    "IpcProtocolError",
    "IpcResponseError",
    "IpcTimeout",
    "IpcTransportError",
    "IpcUser",
    "PresenceClient",
    "ReadyEvent",
    "SessionInfo",
    "__version__",
    "build_handshake",
    "build_set_activity",
    "candidate_pipe_paths",
    "decode_frame",
    "encode_frame",
    "open_pipe",
    "pipe_name",
]
