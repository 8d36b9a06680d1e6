"""Fixtures for federation step tests."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from ssoflow_runtime.engine import StepRunner
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.session import WorkflowSession
from ssoflow_runtime.variables import default_values

Reply = httpx.Response | Callable[[httpx.Request], httpx.Response]


class FakeApi:
    """Routes (method, host + path) to canned responses and records calls.

    Unrouted requests get a 501 so they show up as failures.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _key(method: str, url: httpx.URL) -> tuple[str, str]:
        return method.upper(), f"{url.host}{url.path}"

    def on(self, method: str, url: str, *replies: Reply) -> "FakeApi":
        """Queue replies for a route. The last reply repeats."""
        self.routes[self._key(method, httpx.URL(url))] = list(replies)
        return self

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self.routes.get(self._key(request.method, request.url))
        if not replies:
            return httpx.Response(501, json={"error": {"message": f"unrouted {request.method} {request.url}"}})
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        return reply(request) if callable(reply) else reply

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        key = self._key(method, httpx.URL(url))
        return [r for r in self.requests if self._key(r.method, r.url) == key]

    def body(self, method: str, url: str, index: int = 0) -> Any:
        return json.loads(self.calls(method, url)[index].content)


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def make_session(
    definition: WorkflowDefinition,
    make_runner: Callable[..., StepRunner],
    api: FakeApi,
) -> Callable[..., WorkflowSession]:
    """Session over the federation workflow talking to the fake API.

    Starts from the catalog defaults plus both provider tokens.
    """

    def factory(**values: Any) -> WorkflowSession:
        initial = default_values(definition.variables.values())
        initial.update({"googleAccessToken": "google-token", "msGraphToken": "graph-token"})
        initial.update(values)
        return WorkflowSession(definition, values=initial, runner=make_runner(api.handle))

    return factory
