"""CookieJar implementations."""

from typing import Any


class MemoryCookieJar:
    """Dict-backed jar for tests and the CLI.

    Enforces a per-value size limit so chunking bugs surface the same way
    they would against a browser.
    """

    def __init__(self, max_value_size: int = 4096) -> None:
        self.values: dict[str, str] = {}
        self.max_value_size = max_value_size

    def get(self, name: str) -> str | None:
        return self.values.get(name)

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        if len(value) > self.max_value_size:
            raise ValueError(f"Cookie {name} exceeds {self.max_value_size} bytes")
        self.values[name] = value

    def delete(self, name: str) -> None:
        self.values.pop(name, None)


class ResponseCookieJar:
    """Reads from request cookies and writes to a pending response.

    Writes are visible to later reads within the same request so a token
    refreshed early in a handler is seen by code running after it.
    """

    def __init__(
        self,
        request_cookies: dict[str, str],
        *,
        secure: bool = False,
        path: str = "/",
    ) -> None:
        self._current: dict[str, str] = dict(request_cookies)
        self._pending: dict[str, tuple[str | None, int | None]] = {}
        self.secure = secure
        self.path = path

    def get(self, name: str) -> str | None:
        return self._current.get(name)

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        self._current[name] = value
        self._pending[name] = (value, max_age)

    def delete(self, name: str) -> None:
        self._current.pop(name, None)
        self._pending[name] = (None, None)

    def apply(self, response: Any) -> None:
        """Copy pending writes onto a Starlette/FastAPI response."""
        for name, (value, max_age) in self._pending.items():
            if value is None:
                response.delete_cookie(name, path=self.path)
            else:
                response.set_cookie(
                    name,
                    value,
                    max_age=max_age,
                    path=self.path,
                    httponly=True,
                    secure=self.secure,
                    samesite="lax",
                )
        self._pending.clear()
