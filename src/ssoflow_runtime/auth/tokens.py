"""Per-provider token lifecycle.

Tokens are stored encrypted in chunked cookies named `<provider>_token`.
The OAuth state nonce lives in its own encrypted cookie bound to the
provider and the time it was minted.

Refresh outcomes are classified so callers can tell apart "sign in again"
from "try again later":

- ok: a usable token (cached or freshly refreshed)
- missing: no stored token
- reauth: the refresh token was rejected; stored credentials are cleared
- failed: transient failure; the stored token is kept
"""

import json
import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ValidationError

from ssoflow_runtime.auth.chunked import ChunkedStore
from ssoflow_runtime.auth.crypto import decrypt, encrypt, generate_state
from ssoflow_runtime.auth.oauth import provider_config, token_from_response
from ssoflow_runtime.env import SsoflowSettings
from ssoflow_runtime.exceptions import CryptoError, InvalidStateError, ReauthRequired
from ssoflow_runtime.models import Token, now_ms
from ssoflow_runtime.protocols.cookies import CookieJar

logger = logging.getLogger(__name__)

STATE_COOKIE = "oauth_state"
TOKEN_COOKIE_MAX_AGE = 30 * 24 * 60 * 60

REAUTH_ERROR_CODES = frozenset(
    {
        "invalid_grant",
        "invalid_rapt",
        "interaction_required",
        "login_required",
        "consent_required",
    }
)

RefreshStatus = Literal["ok", "missing", "reauth", "failed"]


def token_cookie(provider: str) -> str:
    return f"{provider}_token"


class RefreshError(BaseModel):
    code: str | None = None
    description: str | None = None


class RefreshResult(BaseModel):
    status: RefreshStatus
    token: Token | None = None
    error: RefreshError | None = None


def parse_refresh_error(response: httpx.Response) -> RefreshError | None:
    """Extract the OAuth error code from a failed token response."""
    body = response.text
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return RefreshError(description=body)
    if not isinstance(data, dict) or not isinstance(data.get("error"), str):
        return RefreshError(description=body)
    return RefreshError(code=data["error"], description=data.get("error_description"))


def requires_reauth(error: RefreshError | None) -> bool:
    if error is None or not error.code:
        return False
    return error.code.lower() in REAUTH_ERROR_CODES


class TokenManager:
    """Reads, writes and refreshes provider tokens held in a CookieJar.

    Usage:
        manager = TokenManager(jar, get_settings())
        result = await manager.refresh_with_result("google")
        if result.status == "reauth":
            ...  # send the user through consent again
    """

    def __init__(
        self,
        jar: CookieJar,
        settings: SsoflowSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.store = ChunkedStore(jar)
        self.settings = settings
        self._transport = transport

    @property
    def _secret(self) -> str:
        return self.settings.require("auth_secret")

    # --- Tokens ---

    def get_token(self, provider: str) -> Token | None:
        """Stored token, or None if absent or undecryptable."""
        encrypted = self.store.get(token_cookie(provider))
        if not encrypted:
            return None
        try:
            return Token.model_validate_json(decrypt(encrypted, self._secret))
        except (CryptoError, ValidationError) as e:
            logger.warning("Discarding unreadable %s token: %s", provider, e)
            return None

    def set_token(self, provider: str, token: Token) -> None:
        encrypted = encrypt(token.model_dump_json(by_alias=True), self._secret)
        self.store.set(token_cookie(provider), encrypted, TOKEN_COOKIE_MAX_AGE)

    def clear_token(self, provider: str) -> None:
        self.store.clear(token_cookie(provider))

    # --- OAuth state ---

    def create_state(self, provider: str) -> str:
        """Mint a state nonce and store it encrypted with its provider."""
        state = generate_state()
        payload = json.dumps({"provider": provider, "state": state, "timestamp": now_ms()})
        max_age = self.settings.oauth_state_ttl_ms // 1000
        self.store.set(STATE_COOKIE, encrypt(payload, self._secret), max_age)
        return state

    def validate_state(self, state: str, provider: str) -> None:
        """Accept a callback state only if it matches the stored nonce.

        The stored nonce is consumed whether or not it matches.

        Raises:
            InvalidStateError: If it is missing, mismatched or expired
        """
        encrypted = self.store.get(STATE_COOKIE)
        self.store.clear(STATE_COOKIE)
        if not encrypted:
            raise InvalidStateError("No OAuth state stored")
        try:
            data: dict[str, Any] = json.loads(decrypt(encrypted, self._secret))
        except (CryptoError, ValueError) as e:
            raise InvalidStateError("OAuth state is unreadable") from e

        if data.get("state") != state or data.get("provider") != provider:
            raise InvalidStateError("OAuth state does not match")
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, int) or now_ms() - timestamp >= self.settings.oauth_state_ttl_ms:
            raise InvalidStateError("OAuth state has expired")

    # --- Refresh ---

    async def refresh_if_needed(self, provider: str) -> Token | None:
        result = await self.refresh_with_result(provider)
        return result.token

    async def require_token(self, provider: str) -> Token | None:
        """Like `refresh_if_needed`, but a rejected refresh is an error.

        Raises:
            ReauthRequired: If the user must sign in to the provider again
        """
        result = await self.refresh_with_result(provider)
        if result.status == "reauth" and result.token is None:
            reason = result.error.code if result.error else "no refresh token"
            raise ReauthRequired(provider, reason)
        return result.token

    async def refresh_with_result(self, provider: str) -> RefreshResult:
        token = self.get_token(provider)
        if token is None:
            return RefreshResult(status="missing")

        now = now_ms()
        if not token.expires_within(self.settings.token_refresh_buffer_ms, now):
            return RefreshResult(status="ok", token=token)

        expired = token.expires_at <= now
        usable = None if expired else token
        if not token.refresh_token:
            logger.info("%s token is expiring and has no refresh token", provider)
            self.clear_token(provider)
            return RefreshResult(status="reauth", token=usable)

        config = provider_config(provider, self.settings)
        form = {
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.settings.token_refresh_timeout
            ) as client:
                response = await client.post(config.token_url, data=form)
        except httpx.HTTPError as e:
            logger.warning("%s token refresh failed: %s", provider, e)
            return RefreshResult(status="failed", token=usable, error=RefreshError(description=str(e)))

        if not response.is_success:
            error = parse_refresh_error(response)
            if requires_reauth(error):
                logger.info("%s refresh token rejected, re-authentication required", provider)
                self.clear_token(provider)
                return RefreshResult(status="reauth", error=error)
            logger.warning("%s token refresh failed with HTTP %d", provider, response.status_code)
            return RefreshResult(status="failed", token=usable, error=error)

        try:
            refreshed = token_from_response(response.json(), tuple(token.scope), token.refresh_token)
        except (ValueError, KeyError, ValidationError) as e:
            logger.warning("%s token refresh returned an unusable body: %s", provider, e)
            return RefreshResult(status="failed", token=usable, error=RefreshError(description=str(e)))

        self.set_token(provider, refreshed)
        logger.debug("Refreshed %s token", provider)
        return RefreshResult(status="ok", token=refreshed)
