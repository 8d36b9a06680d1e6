"""CookieJar protocol definition."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class CookieJar(Protocol):
    """Protocol for size-limited credential storage.

    Browser cookies in the server, a dict in tests and the CLI. Values are
    opaque strings; callers chunk anything larger than one unit.
    """

    def get(self, name: str) -> str | None:
        """Get a stored value, or None if absent."""
        ...

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        """Store a value, optionally expiring after max_age seconds."""
        ...

    def delete(self, name: str) -> None:
        """Remove a value. Missing names are ignored."""
        ...
