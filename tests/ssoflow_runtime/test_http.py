"""Tests for the provider API client."""

import json

import httpx
import pytest
from tenacity import wait_none

from ssoflow_runtime.exceptions import ConflictError, HttpError, NotFoundError, PreconditionFailedError
from ssoflow_runtime.http import GOOGLE, MICROSOFT, ApiClient
from ssoflow_runtime.models import LroInfo, StepLogEntry


def make_client(handler, token: str | None = "ya29.secret-token", **kwargs) -> ApiClient:
    return ApiClient(
        GOOGLE,
        token,
        transport=httpx.MockTransport(handler),
        retry_wait=wait_none(),
        **kwargs,
    )


class TestRequests:
    @pytest.mark.asyncio
    async def test_bearer_token_injected(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler) as client:
            assert await client.get("https://example.test/a") == {"ok": True}
        assert seen[0].headers["Authorization"] == "Bearer ya29.secret-token"

    @pytest.mark.asyncio
    async def test_json_body_and_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "1"})

        async with make_client(handler) as client:
            await client.post("https://example.test/a", {"name": "x"}, params={"mode": "y"})
        assert seen[0].method == "POST"
        assert seen[0].url.params["mode"] == "y"
        assert json.loads(seen[0].content) == {"name": "x"}

    @pytest.mark.asyncio
    async def test_empty_body_decodes_to_empty_dict(self) -> None:
        async with make_client(lambda request: httpx.Response(204)) as client:
            assert await client.delete("https://example.test/a") == {}

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self) -> None:
        async with make_client(lambda request: httpx.Response(200), token=None) as client:
            with pytest.raises(HttpError) as exc_info:
                await client.get("https://example.test/a")
        assert exc_info.value.status == 401


class TestErrorMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(404, NotFoundError), (409, ConflictError), (412, PreconditionFailedError)],
    )
    async def test_status_mapped(self, status: int, error_type: type) -> None:
        body = {"error": {"code": status, "message": "nope"}}
        async with make_client(lambda request: httpx.Response(status, json=body)) as client:
            with pytest.raises(error_type) as exc_info:
                await client.post("https://example.test/a", {})
        assert exc_info.value.status == status
        assert exc_info.value.detail == "nope"
        assert exc_info.value.body == body

    @pytest.mark.asyncio
    async def test_graph_error_detail(self) -> None:
        body = {"error": {"code": "Request_BadRequest", "message": "Invalid filter"}}
        async with make_client(lambda request: httpx.Response(400, json=body)) as client:
            with pytest.raises(HttpError, match="Invalid filter"):
                await client.post("https://example.test/a", {})

    @pytest.mark.asyncio
    async def test_network_error_is_status_zero(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler, max_retries=0) as client:
            with pytest.raises(HttpError) as exc_info:
                await client.get("https://example.test/a")
        assert exc_info.value.status == 0

    @pytest.mark.asyncio
    async def test_get_or_none(self) -> None:
        async with make_client(lambda request: httpx.Response(404, json={})) as client:
            assert await client.get_or_none("https://example.test/a") is None


class TestRetries:
    @pytest.mark.asyncio
    async def test_get_retried_on_503(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503, json={})
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler, max_retries=3) as client:
            assert await client.get("https://example.test/a") == {"ok": True}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_get_gives_up_after_max_retries(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(429, json={})

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(HttpError) as exc_info:
                await client.get("https://example.test/a")
        assert exc_info.value.status == 429
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_get_not_retried_on_404(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404, json={})

        async with make_client(handler) as client:
            with pytest.raises(NotFoundError):
                await client.get("https://example.test/a")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_mutating_calls_never_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(503, json={})

        async with make_client(handler, max_retries=3) as client:
            with pytest.raises(HttpError):
                await client.post("https://example.test/a", {})
        assert len(calls) == 1


class TestPagination:
    @pytest.mark.asyncio
    async def test_google_page_tokens(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("pageToken") == "p2":
                return httpx.Response(200, json={"items": [3]})
            return httpx.Response(200, json={"items": [1, 2], "nextPageToken": "p2"})

        async with make_client(handler) as client:
            assert await client.paginate("https://example.test/items", params={"customer": "c"}) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_graph_next_link(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/page2":
                return httpx.Response(200, json={"value": ["b"]})
            return httpx.Response(
                200, json={"value": ["a"], "@odata.nextLink": "https://graph.test/page2"}
            )

        client = ApiClient(MICROSOFT, "token", transport=httpx.MockTransport(handler))
        async with client:
            assert await client.paginate("https://graph.test/page1", "value") == ["a", "b"]


class TestHooks:
    @pytest.mark.asyncio
    async def test_logs_redact_bodies(self) -> None:
        logs: list[StepLogEntry] = []
        body = {"id": "1", "password": "pw"}
        async with make_client(lambda request: httpx.Response(200, json=body), on_log=logs.append) as client:
            await client.post("https://example.test/users", {"password": "pw"})

        request_log, response_log = logs
        assert request_log.method == "POST"
        assert request_log.data == {"password": "[REDACTED]"}
        assert response_log.status == 200
        assert response_log.data == {"id": "1", "password": "[REDACTED]"}
        assert all("ya29" not in entry.message for entry in logs)

    @pytest.mark.asyncio
    async def test_lro_hook(self) -> None:
        seen: list[LroInfo] = []
        async with make_client(lambda request: httpx.Response(202), on_lro=seen.append) as client:
            await client.post("https://example.test/job", {})
        assert [lro.operation_type for lro in seen] == ["ms-async"]
