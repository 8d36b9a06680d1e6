"""VariableChannel protocol definition."""

from collections.abc import Callable, Iterable
from typing import Any, Protocol

ChangeHandler = Callable[[str, Any], None]


class Unsubscribe(Protocol):
    def __call__(self) -> None: ...


class VariableChannel(Protocol):
    """Protocol for keyed change notification.

    Subscribers register per key; publishing a set of changed keys invokes
    exactly the subscribers of those keys.
    """

    def subscribe(self, key: str, handler: ChangeHandler) -> Unsubscribe:
        """Register a handler for one key. Returns an unsubscribe callable."""
        ...

    def subscribe_all(self, handler: ChangeHandler) -> Unsubscribe:
        """Register a handler called for every published key."""
        ...

    def publish(self, changes: dict[str, Any]) -> None:
        """Notify subscribers of each changed key."""
        ...

    def keys(self) -> Iterable[str]:
        """Keys with at least one subscriber."""
        ...
