"""Tests for cookie jar drivers."""

import pytest
from starlette.responses import Response

from ssoflow_runtime.drivers import MemoryCookieJar, ResponseCookieJar


class TestMemoryCookieJar:
    def test_set_get_delete(self) -> None:
        jar = MemoryCookieJar()
        jar.set("a", "1")
        assert jar.get("a") == "1"
        jar.delete("a")
        assert jar.get("a") is None

    def test_rejects_oversized_value(self) -> None:
        jar = MemoryCookieJar(max_value_size=10)
        with pytest.raises(ValueError, match="exceeds"):
            jar.set("a", "x" * 11)


class TestResponseCookieJar:
    def test_reads_request_cookies(self) -> None:
        jar = ResponseCookieJar({"a": "1"})
        assert jar.get("a") == "1"
        assert jar.get("b") is None

    def test_writes_visible_before_apply(self) -> None:
        jar = ResponseCookieJar({"a": "1"})
        jar.set("b", "2")
        jar.delete("a")
        assert jar.get("b") == "2"
        assert jar.get("a") is None

    def test_apply_sets_and_deletes_cookies(self) -> None:
        jar = ResponseCookieJar({"old": "x"}, secure=True)
        jar.set("new", "value", max_age=60)
        jar.delete("old")
        response = Response()

        jar.apply(response)

        headers = response.headers.getlist("set-cookie")
        assert len(headers) == 2
        new_cookie = next(h for h in headers if h.startswith("new="))
        assert "HttpOnly" in new_cookie
        assert "Secure" in new_cookie
        assert "Max-Age=60" in new_cookie
        old_cookie = next(h for h in headers if h.startswith("old="))
        assert "Max-Age=0" in old_cookie
