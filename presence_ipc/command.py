"""Command messages carried inside MESSAGE frames."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import uuid4

from .errors import IpcProtocolError


class CommandType(StrEnum):
    """Command kinds used by this client."""

    DISPATCH = "DISPATCH"
    SET_ACTIVITY = "SET_ACTIVITY"


class EventType(StrEnum):
    """Event kinds carried by DISPATCH messages."""

    READY = "READY"
    ERROR = "ERROR"


def _new_nonce() -> str:
    return str(uuid4())


@dataclass(slots=True)
class Command:
    """A request sent to, or a message received from, the host.

    ``cmd`` and ``evt`` are plain strings so kinds the client does not know
    about survive decoding; compare them against ``CommandType``/``EventType``.
    """

    cmd: str
    args: dict[str, Any] | None = None
    nonce: str | None = field(default_factory=_new_nonce)
    data: dict[str, Any] | None = None
    evt: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the wire shape, omitting absent optional fields."""
        payload: dict[str, Any] = {"cmd": str(self.cmd)}
        if self.args is not None:
            payload["args"] = self.args
        payload["nonce"] = self.nonce
        if self.data is not None:
            payload["data"] = self.data
        if self.evt is not None:
            payload["evt"] = str(self.evt)
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> Command:
        """Build a Command from a decoded MESSAGE payload.

        Raises:
            IpcProtocolError: If the payload does not have the command shape.
        """
        if not isinstance(payload, dict):
            raise IpcProtocolError(
                f"Message payload must be an object, got {type(payload).__name__}"
            )

        cmd = payload.get("cmd")
        if not isinstance(cmd, str) or not cmd:
            raise IpcProtocolError("Message payload is missing 'cmd'")

        args = payload.get("args")
        data = payload.get("data")
        for name, value in (("args", args), ("data", data)):
            if value is not None and not isinstance(value, dict):
                raise IpcProtocolError(f"Message field '{name}' must be an object")

        nonce = payload.get("nonce")
        if nonce is not None and not isinstance(nonce, str):
            nonce = str(nonce)

        evt = payload.get("evt")
        if evt is not None and not isinstance(evt, str):
            raise IpcProtocolError("Message field 'evt' must be a string")

        return cls(cmd=cmd, args=args, nonce=nonce, data=data, evt=evt)


def build_set_activity(
    activity: dict[str, Any] | None, *, pid: int | None = None
) -> Command:
    """Construct a SET_ACTIVITY command.

    Args:
        activity: Activity object to publish, or None to clear it.
        pid: Process the activity belongs to. Defaults to the current process.
    """
    return Command(
        cmd=CommandType.SET_ACTIVITY,
        args={
            "pid": pid if pid is not None else os.getpid(),
            "activity": activity,
        },
    )
