"""Registry of one-shot response callbacks keyed by request nonce."""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .command import Command

CommandCallback = Callable[[Any, "Command"], Awaitable[None] | None]


class CallbackRegistry:
    """Map outstanding request nonces to their response callbacks.

    Entries live from registration until the matching response pops them or
    they are discarded. There is no expiry: a request the host never answers
    stays registered.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, CommandCallback] = {}
        self._lock = threading.Lock()

    def register(self, nonce: str, callback: CommandCallback) -> None:
        """Register a callback for a nonce that is not already outstanding.

        Raises:
            ValueError: If the nonce is empty or already registered.
        """
        if not nonce:
            raise ValueError("A nonce is required to register a callback")
        with self._lock:
            if nonce in self._callbacks:
                raise ValueError(f"Nonce {nonce} is already outstanding")
            self._callbacks[nonce] = callback

    def pop(self, nonce: str) -> CommandCallback | None:
        """Remove and return the callback for a nonce, if registered."""
        with self._lock:
            return self._callbacks.pop(nonce, None)

    def discard(self, nonce: str) -> bool:
        """Drop a registration without invoking it."""
        return self.pop(nonce) is not None

    def __contains__(self, nonce: object) -> bool:
        with self._lock:
            return nonce in self._callbacks

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
