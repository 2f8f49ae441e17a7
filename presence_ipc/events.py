"""Notification hooks and session data for the presence client."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .client import PresenceClient

_LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None] | None]


class EventHook:
    """Ordered list of subscribers for one notification.

    Handlers may be plain functions or coroutine functions. Delivery iterates
    over a snapshot, so handlers may subscribe or unsubscribe while it runs.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Add a handler; returns a callable that removes it again."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def __len__(self) -> int:
        return len(self._handlers)

    async def fire(self, *args: Any) -> None:
        """Invoke every handler; handler errors are logged, not raised."""
        for handler in tuple(self._handlers):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as err:
                _LOGGER.exception("%s handler error: %s", self.name, err)


@dataclass(frozen=True, slots=True)
class IpcUser:
    """User the host is logged in as."""

    id: str
    username: str | None = None
    discriminator: str | None = None
    global_name: str | None = None
    avatar: str | None = None
    bot: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IpcUser:
        user_id = data.get("id")
        return cls(
            id=str(user_id) if user_id is not None else "",
            username=data.get("username"),
            discriminator=data.get("discriminator"),
            global_name=data.get("global_name"),
            avatar=data.get("avatar"),
            bot=bool(data.get("bot", False)),
        )


@dataclass(frozen=True, slots=True)
class IpcEnvironment:
    """Host environment configuration sent with READY."""

    cdn_host: str | None = None
    api_endpoint: str | None = None
    environment: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IpcEnvironment:
        return cls(
            cdn_host=data.get("cdn_host"),
            api_endpoint=data.get("api_endpoint"),
            environment=data.get("environment"),
        )


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Session metadata captured from the host's READY event."""

    protocol_version: int | None
    current_user: IpcUser | None
    environment: IpcEnvironment

    @classmethod
    def from_ready(cls, data: dict[str, Any]) -> SessionInfo:
        """Extract session metadata from READY event data."""
        user = data.get("user")
        config = data.get("config")
        version = data.get("v")
        return cls(
            protocol_version=(
                version
                if isinstance(version, int) and not isinstance(version, bool)
                else None
            ),
            current_user=IpcUser.from_dict(user) if isinstance(user, dict) else None,
            environment=IpcEnvironment.from_dict(
                config if isinstance(config, dict) else {}
            ),
        )


@dataclass(frozen=True, slots=True)
class ReadyEvent:
    """Payload delivered to Ready subscribers."""

    client: PresenceClient
    version: int | None
    user: IpcUser | None
    config: IpcEnvironment
