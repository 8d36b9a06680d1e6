"""VariableChannel implementations."""

from collections.abc import Iterable
from typing import Any

from ssoflow_runtime.protocols.channel import ChangeHandler

ALL_KEYS = "*"


class Subscription:
    """Handle returned by subscribe. Calling it unsubscribes.

    Unsubscribing twice is a no-op.
    """

    def __init__(self, channel: "KeyedChannel", key: str, handle: int) -> None:
        self._channel = channel
        self.key = key
        self.handle = handle
        self.active = True

    def __call__(self) -> None:
        if self.active:
            self._channel._remove(self.key, self.handle)
            self.active = False


class KeyedChannel:
    """In-process keyed observer channel.

    Maps each key to its subscriber handles. Handlers of one key run in
    subscription order; wildcard handlers run after key handlers, once per
    changed key.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, dict[int, ChangeHandler]] = {}
        self._next_handle = 0

    def subscribe(self, key: str, handler: ChangeHandler) -> Subscription:
        """Subscribe a handler to changes of one key."""
        self._next_handle += 1
        self._handlers.setdefault(key, {})[self._next_handle] = handler
        return Subscription(self, key, self._next_handle)

    def subscribe_all(self, handler: ChangeHandler) -> Subscription:
        """Subscribe a handler to changes of every key."""
        return self.subscribe(ALL_KEYS, handler)

    def publish(self, changes: dict[str, Any]) -> None:
        """Notify subscribers of exactly the keys in changes."""
        for key, value in changes.items():
            for handler in list(self._handlers.get(key, {}).values()):
                handler(key, value)
            for handler in list(self._handlers.get(ALL_KEYS, {}).values()):
                handler(key, value)

    def keys(self) -> Iterable[str]:
        return [key for key, handlers in self._handlers.items() if handlers and key != ALL_KEYS]

    def subscriber_count(self, key: str) -> int:
        return len(self._handlers.get(key, {}))

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()

    def _remove(self, key: str, handle: int) -> None:
        handlers = self._handlers.get(key)
        if handlers is None:
            return
        handlers.pop(handle, None)
        if not handlers:
            del self._handlers[key]

