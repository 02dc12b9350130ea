"""A slot that holds several callbacks and calls them all."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


class CallbackSlot:
    """Holds callbacks and triggers every registered one in insertion order."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[..., Any] | None] = []

    def add(self, callback: Callable[..., Any]) -> int:
        """Register a callback and return its id."""
        self._callbacks.append(callback)
        return len(self._callbacks) - 1

    def remove(self, callback_id: int) -> None:
        """Unregister the callback with the given id."""
        self._callbacks[callback_id] = None

    def __bool__(self) -> bool:
        return any(callback is not None for callback in self._callbacks)

    def call(self, *args: Any) -> None:
        """Call every registered callback with ``args``."""
        for callback in list(self._callbacks):
            if callback is not None:
                callback(*args)

    def __call__(self, *args: Any) -> None:
        self.call(*args)