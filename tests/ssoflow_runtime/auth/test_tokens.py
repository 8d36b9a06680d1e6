"""Tests for the token lifecycle."""

from urllib.parse import parse_qs

import httpx
import pytest

from ssoflow_runtime.auth.tokens import STATE_COOKIE, TokenManager, token_cookie
from ssoflow_runtime.drivers import MemoryCookieJar
from ssoflow_runtime.env import SsoflowSettings
from ssoflow_runtime.exceptions import InvalidStateError, ReauthRequired
from ssoflow_runtime.models import Token, now_ms

HOUR_MS = 60 * 60 * 1000


def make_token(expires_in_ms: int = HOUR_MS, refresh_token: str | None = "refresh-1") -> Token:
    return Token(
        access_token="access-1",
        refresh_token=refresh_token,
        expires_at=now_ms() + expires_in_ms,
        scope=["openid"],
    )


class RecordingTransport:
    """Token endpoint stand-in that counts calls."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_manager(settings: SsoflowSettings, response=None) -> tuple[TokenManager, MemoryCookieJar, RecordingTransport]:
    jar = MemoryCookieJar()
    recorder = RecordingTransport(response or httpx.Response(500))
    return TokenManager(jar, settings, transport=recorder.transport), jar, recorder


class TestTokenStorage:
    def test_round_trip_is_encrypted(self, settings: SsoflowSettings) -> None:
        manager, jar, _ = make_manager(settings)
        token = make_token()

        manager.set_token("google", token)

        assert "access-1" not in jar.values[token_cookie("google")]
        assert manager.get_token("google") == token

    def test_clear(self, settings: SsoflowSettings) -> None:
        manager, jar, _ = make_manager(settings)
        manager.set_token("google", make_token())
        manager.clear_token("google")
        assert manager.get_token("google") is None
        assert jar.values == {}

    def test_unreadable_token_is_none(self, settings: SsoflowSettings) -> None:
        manager, jar, _ = make_manager(settings)
        jar.set(token_cookie("microsoft"), "garbage")
        assert manager.get_token("microsoft") is None


class TestOAuthState:
    def test_valid_state_accepted_once(self, settings: SsoflowSettings) -> None:
        manager, jar, _ = make_manager(settings)
        state = manager.create_state("google")

        manager.validate_state(state, "google")

        assert STATE_COOKIE not in jar.values
        with pytest.raises(InvalidStateError, match="No OAuth state"):
            manager.validate_state(state, "google")

    def test_mismatched_state(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings)
        manager.create_state("google")
        with pytest.raises(InvalidStateError, match="does not match"):
            manager.validate_state("forged", "google")

    def test_wrong_provider(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings)
        state = manager.create_state("google")
        with pytest.raises(InvalidStateError, match="does not match"):
            manager.validate_state(state, "microsoft")

    def test_expired_state(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings)
        state = manager.create_state("google")
        settings.oauth_state_ttl_ms = 0
        with pytest.raises(InvalidStateError, match="expired"):
            manager.validate_state(state, "google")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_missing(self, settings: SsoflowSettings) -> None:
        manager, _, recorder = make_manager(settings)
        result = await manager.refresh_with_result("google")
        assert result.status == "missing"
        assert result.token is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_fresh_token_not_refreshed(self, settings: SsoflowSettings) -> None:
        manager, _, recorder = make_manager(settings)
        manager.set_token("google", make_token())

        assert (await manager.refresh_if_needed("google")).access_token == "access-1"
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_once(self, settings: SsoflowSettings) -> None:
        response = httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})
        manager, _, recorder = make_manager(settings, response)
        manager.set_token("google", make_token(expires_in_ms=60_000))

        result = await manager.refresh_with_result("google")

        assert result.status == "ok"
        assert result.token.access_token == "access-2"
        assert result.token.refresh_token == "refresh-1"
        assert len(recorder.requests) == 1
        form = parse_qs(recorder.requests[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]

        stored = manager.get_token("google")
        assert stored.access_token == "access-2"
        await manager.refresh_if_needed("google")
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_rejected_refresh_token_requires_reauth(self, settings: SsoflowSettings) -> None:
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "revoked"})
        manager, _, _ = make_manager(settings, response)
        manager.set_token("microsoft", make_token(expires_in_ms=-1000))

        result = await manager.refresh_with_result("microsoft")

        assert result.status == "reauth"
        assert result.error.code == "invalid_grant"
        assert manager.get_token("microsoft") is None

    @pytest.mark.asyncio
    async def test_transient_failure_keeps_usable_token(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings, httpx.Response(503, text="unavailable"))
        manager.set_token("google", make_token(expires_in_ms=60_000))

        result = await manager.refresh_with_result("google")

        assert result.status == "failed"
        assert result.token.access_token == "access-1"
        assert manager.get_token("google") is not None

    @pytest.mark.asyncio
    async def test_transient_failure_with_expired_token(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings, httpx.Response(503))
        manager.set_token("google", make_token(expires_in_ms=-1000))

        result = await manager.refresh_with_result("google")

        assert result.status == "failed"
        assert result.token is None

    @pytest.mark.asyncio
    async def test_network_error_is_failed(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings, httpx.ConnectTimeout("timed out"))
        manager.set_token("google", make_token(expires_in_ms=60_000))

        result = await manager.refresh_with_result("google")

        assert result.status == "failed"
        assert result.token is not None

    @pytest.mark.asyncio
    async def test_no_refresh_token_requires_reauth(self, settings: SsoflowSettings) -> None:
        manager, _, recorder = make_manager(settings)
        manager.set_token("google", make_token(expires_in_ms=60_000, refresh_token=None))

        result = await manager.refresh_with_result("google")

        assert result.status == "reauth"
        assert recorder.requests == []
        assert manager.get_token("google") is None


class TestRequireToken:
    @pytest.mark.asyncio
    async def test_rejected_refresh_raises(self, settings: SsoflowSettings) -> None:
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "revoked"})
        manager, _, _ = make_manager(settings, response)
        manager.set_token("microsoft", make_token(expires_in_ms=-1000))

        with pytest.raises(ReauthRequired) as exc_info:
            await manager.require_token("microsoft")

        assert exc_info.value.provider == "microsoft"
        assert exc_info.value.reason == "invalid_grant"
        assert manager.get_token("microsoft") is None

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token_raises(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings)
        manager.set_token("google", make_token(expires_in_ms=-1000, refresh_token=None))

        with pytest.raises(ReauthRequired, match="no refresh token"):
            await manager.require_token("google")

    @pytest.mark.asyncio
    async def test_still_valid_token_is_returned_before_reauth(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings)
        manager.set_token("google", make_token(expires_in_ms=60_000, refresh_token=None))

        token = await manager.require_token("google")

        assert token.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_missing_and_transient_are_not_errors(self, settings: SsoflowSettings) -> None:
        manager, _, _ = make_manager(settings, httpx.Response(503))
        assert await manager.require_token("google") is None

        manager.set_token("google", make_token(expires_in_ms=-1000))
        assert await manager.require_token("google") is None
