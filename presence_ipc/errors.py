"""Client error types for local presence IPC interactions."""

from __future__ import annotations


class IpcClientError(Exception):
    """Base error for presence IPC client failures."""


class IpcConfigurationError(IpcClientError):
    """Client was constructed with invalid identifiers."""


class IpcConnectionError(IpcClientError):
    """IPC channel to the host could not be opened."""


class IpcTimeout(IpcConnectionError):
    """Timeout while waiting on the host."""


class IpcProtocolError(IpcClientError):
    """Inbound data violated the wire protocol; the stream is desynchronized."""


class IpcFrameError(IpcProtocolError):
    """A frame could not be encoded or decoded."""


class IpcTransportError(IpcClientError):
    """Reading from or writing to the IPC channel failed."""


class IpcResponseError(IpcClientError):
    """Error event reported by the host."""

    def __init__(self, code: int | None, message: str) -> None:
        super().__init__(message)
        self.code = code
