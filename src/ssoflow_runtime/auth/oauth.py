"""OAuth 2.0 authorization code flow for the two providers.

Google requests offline access with forced consent so a refresh token is
always issued. Microsoft uses the tenant-scoped v2.0 endpoints, falling
back to the multi-tenant "organizations" authority.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict

from ssoflow_runtime.env import SsoflowSettings
from ssoflow_runtime.exceptions import AuthError, TokenExchangeError
from ssoflow_runtime.http import GOOGLE, MICROSOFT
from ssoflow_runtime.models import Token, now_ms

logger = logging.getLogger(__name__)

PROVIDER_NAMES = (GOOGLE, MICROSOFT)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com"

GOOGLE_SCOPES = (
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/admin.directory.user",
    "https://www.googleapis.com/auth/admin.directory.orgunit",
    "https://www.googleapis.com/auth/admin.directory.domain",
    "https://www.googleapis.com/auth/admin.directory.rolemanagement",
    "https://www.googleapis.com/auth/cloud-identity.inboundsso",
    "https://www.googleapis.com/auth/siteverification",
)

MICROSOFT_SCOPES = (
    "openid",
    "profile",
    "email",
    "offline_access",
    "User.Read",
    "Directory.Read.All",
    "Application.ReadWrite.All",
    "AppRoleAssignment.ReadWrite.All",
    "Policy.ReadWrite.ApplicationConfiguration",
)


class ProviderConfig(BaseModel):
    """Client registration and endpoints for one provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: tuple[str, ...]
    extra_params: dict[str, str] = {}


def _check_provider(provider: str) -> None:
    if provider not in PROVIDER_NAMES:
        raise AuthError(f"Unknown provider: {provider}")


def provider_config(provider: str, settings: SsoflowSettings) -> ProviderConfig:
    """Resolve a provider's configuration from settings.

    Raises:
        AuthError: If the provider is unknown
        ConfigurationError: If its client credentials are not set
    """
    _check_provider(provider)
    if provider == GOOGLE:
        extra = {"access_type": "offline", "prompt": "consent"}
        if settings.google_hd_domain:
            extra["hd"] = settings.google_hd_domain
        return ProviderConfig(
            name=GOOGLE,
            client_id=settings.require("google_oauth_client_id"),
            client_secret=settings.require("google_oauth_client_secret"),
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            redirect_uri=settings.redirect_uri(GOOGLE),
            scopes=GOOGLE_SCOPES,
            extra_params=extra,
        )

    tenant = settings.microsoft_tenant or "organizations"
    extra = {}
    if settings.microsoft_tenant and "." in settings.microsoft_tenant:
        extra["domain_hint"] = settings.microsoft_tenant
    return ProviderConfig(
        name=MICROSOFT,
        client_id=settings.require("microsoft_oauth_client_id"),
        client_secret=settings.require("microsoft_oauth_client_secret"),
        authorize_url=f"{MICROSOFT_LOGIN_URL}/{tenant}/oauth2/v2.0/authorize",
        token_url=f"{MICROSOFT_LOGIN_URL}/{tenant}/oauth2/v2.0/token",
        redirect_uri=settings.redirect_uri(MICROSOFT),
        scopes=MICROSOFT_SCOPES,
        extra_params=extra,
    )


def build_auth_url(provider: str, state: str, settings: SsoflowSettings) -> str:
    config = provider_config(provider, settings)
    params = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
        **config.extra_params,
    }
    return f"{config.authorize_url}?{urlencode(params)}"


def token_from_response(
    data: dict[str, Any],
    scopes: tuple[str, ...],
    refresh_token: str | None = None,
) -> Token:
    """Build a Token from a token endpoint response.

    expiresAt is absolute milliseconds. A refresh response that does not
    rotate the refresh token keeps the previous one.
    """
    scope = data.get("scope")
    return Token(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or refresh_token,
        expires_at=now_ms() + int(data.get("expires_in", 3600)) * 1000,
        scope=scope.split(" ") if scope else list(scopes),
    )


async def exchange_code(
    provider: str,
    code: str,
    settings: SsoflowSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Token:
    """Exchange an authorization code for tokens.

    Raises:
        TokenExchangeError: On a non-2xx response, with the raw body attached
    """
    config = provider_config(provider, settings)
    form = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "code": code,
        "redirect_uri": config.redirect_uri,
        "grant_type": "authorization_code",
    }
    async with httpx.AsyncClient(transport=transport, timeout=settings.http_timeout) as client:
        response = await client.post(config.token_url, data=form)

    if not response.is_success:
        logger.warning("%s token exchange failed with HTTP %d", provider, response.status_code)
        raise TokenExchangeError(provider, response.status_code, response.text)

    logger.info("Exchanged authorization code for %s token", provider)
    return token_from_response(response.json(), config.scopes)
