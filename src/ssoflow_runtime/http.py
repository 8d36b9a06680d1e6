"""Authenticated HTTP clients for the two administrative APIs.

Each `ApiClient` is scoped to one provider and one bearer token. It maps
error statuses onto the HttpError family, follows both pagination styles,
reports every call to the step log and classifies long-running operations.

Idempotent GETs are retried with exponential backoff on 429, 5xx and
network errors. Mutating calls are never retried; a failed execute is
re-run only when the user asks.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from ssoflow_runtime.exceptions import (
    ConflictError,
    HttpError,
    NotFoundError,
    PreconditionFailedError,
)
from ssoflow_runtime.lro import detect_lro
from ssoflow_runtime.models import LogLevel, LroInfo, StepLogEntry
from ssoflow_runtime.redact import mask_token, redact

logger = logging.getLogger(__name__)

LogHook = Callable[[StepLogEntry], None]
LroHook = Callable[[LroInfo], None]

GOOGLE = "google"
MICROSOFT = "microsoft"


class Endpoints:
    """Well-known API base URLs."""

    GOOGLE_DIRECTORY = "https://admin.googleapis.com/admin/directory/v1"
    GOOGLE_DOMAINS = f"{GOOGLE_DIRECTORY}/customer/my_customer/domains"
    GOOGLE_ORG_UNITS = f"{GOOGLE_DIRECTORY}/customer/my_customer/orgunits"
    GOOGLE_USERS = f"{GOOGLE_DIRECTORY}/users"
    GOOGLE_ROLES = f"{GOOGLE_DIRECTORY}/customer/my_customer/roles"
    GOOGLE_ROLE_ASSIGNMENTS = f"{GOOGLE_DIRECTORY}/customer/my_customer/roleassignments"
    GOOGLE_ROLE_PRIVILEGES = f"{GOOGLE_DIRECTORY}/customer/my_customer/roles/ALL/privileges"
    GOOGLE_SITE_VERIFICATION = "https://www.googleapis.com/siteVerification/v1"
    CLOUD_IDENTITY = "https://cloudidentity.googleapis.com/v1"
    GOOGLE_SSO_PROFILES = f"{CLOUD_IDENTITY}/inboundSamlSsoProfiles"
    GOOGLE_CUSTOMER_SSO_PROFILES = f"{CLOUD_IDENTITY}/customers/my_customer/inboundSamlSsoProfiles"
    GOOGLE_SSO_ASSIGNMENTS = f"{CLOUD_IDENTITY}/inboundSsoAssignments"

    GRAPH_V1 = "https://graph.microsoft.com/v1.0"
    GRAPH_BETA = "https://graph.microsoft.com/beta"
    MS_APPLICATIONS = f"{GRAPH_BETA}/applications"
    MS_SERVICE_PRINCIPALS = f"{GRAPH_V1}/servicePrincipals"
    MS_ORGANIZATION = f"{GRAPH_V1}/organization"
    MS_CLAIMS_POLICIES = f"{GRAPH_BETA}/policies/claimsMappingPolicies"

    @staticmethod
    def google_resource(resource_name: str) -> str:
        """URL of a Cloud Identity resource given its full resource name."""
        return f"{Endpoints.CLOUD_IDENTITY}/{resource_name}"

    @staticmethod
    def ms_template_instantiate(template_id: str) -> str:
        return f"{Endpoints.GRAPH_V1}/applicationTemplates/{template_id}/instantiate"

    @staticmethod
    def ms_sync(sp_id: str) -> str:
        return f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}/synchronization"

    @staticmethod
    def ms_token_signing_certificates(sp_id: str) -> str:
        return f"{Endpoints.GRAPH_BETA}/servicePrincipals/{sp_id}/tokenSigningCertificates"

    @staticmethod
    def ms_add_token_signing_certificate(sp_id: str) -> str:
        return f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}/addTokenSigningCertificate"

    @staticmethod
    def ms_read_claims_policy(sp_id: str) -> str:
        return f"{Endpoints.GRAPH_BETA}/servicePrincipals/{sp_id}/claimsMappingPolicies"

    @staticmethod
    def ms_assign_claims_policy(sp_id: str) -> str:
        return f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}/claimsMappingPolicies/$ref"

    @staticmethod
    def ms_unassign_claims_policy(sp_id: str, policy_id: str) -> str:
        return f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}/claimsMappingPolicies/{policy_id}/$ref"


def _error_detail(body: Any) -> str | None:
    """Pull a human-readable message out of a Google or Graph error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("error_description"), str):
            return body["error_description"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("message"), str):
            return body["message"]
    if isinstance(body, str) and body:
        return body[:500]
    return None


def raise_for_status(status: int, body: Any, url: str) -> None:
    """Map an error status onto the HttpError family."""
    if status < 400:
        return
    detail = _error_detail(body)
    if status == 404:
        raise NotFoundError(detail, body, url)
    if status == 409:
        raise ConflictError(detail, body, url)
    if status == 412:
        raise PreconditionFailedError(detail, body, url)
    raise HttpError(status, detail, body, url)


def _is_retryable(error: BaseException) -> bool:
    if not isinstance(error, HttpError):
        return False
    return error.status == 0 or error.status == 429 or error.status >= 500


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiClient:
    """Async client for one provider with bearer-token injection.

    Usage:
        async with ApiClient(GOOGLE, token) as google:
            users = await google.paginate(Endpoints.GOOGLE_USERS, "users")
    """

    def __init__(
        self,
        provider: str,
        token: str | None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
        on_log: LogHook | None = None,
        on_lro: LroHook | None = None,
    ) -> None:
        self.provider = provider
        self._token = token
        self._transport = transport
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._on_log = on_log
        self._on_lro = on_lro
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return self._client

    def _log(self, entry: StepLogEntry) -> None:
        if self._on_log is not None:
            self._on_log(entry)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body ({} when empty).

        Raises:
            NotFoundError, ConflictError, PreconditionFailedError, HttpError:
                On error statuses; HttpError(0) when no response arrived
        """
        method = method.upper()
        attempts = self._max_retries + 1 if method == "GET" else 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(method, url, json=json, params=params)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
    ) -> Any:
        if not self._token:
            raise HttpError(401, f"No {self.provider} access token available", url=url)

        headers = {"Authorization": f"Bearer {self._token}"}
        logger.debug("%s %s %s (token %s)", self.provider, method, url, mask_token(self._token))
        self._log(
            StepLogEntry(
                level=LogLevel.DEBUG,
                message=f"Request {method} {url}",
                method=method,
                url=url,
                data=redact(json) if json is not None else None,
            )
        )

        try:
            response = await self._http().request(method, url, json=json, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.warning("%s %s %s failed: %s", self.provider, method, url, e)
            self._log(
                StepLogEntry(level=LogLevel.ERROR, message=f"Network error: {e}", method=method, url=url)
            )
            raise HttpError(0, str(e) or type(e).__name__, url=url) from e

        body = _decode(response)
        level = LogLevel.ERROR if response.status_code >= 400 else LogLevel.DEBUG
        self._log(
            StepLogEntry(
                level=level,
                message=f"Response {response.status_code} {method} {url}",
                method=method,
                url=url,
                status=response.status_code,
                data=redact(body),
            )
        )
        logger.debug("%s %s %s -> %d", self.provider, method, url, response.status_code)
        raise_for_status(response.status_code, body, url)

        if self._on_lro is not None:
            lro = detect_lro(response.status_code, body)
            if lro is not None:
                self._on_lro(lro)
        return body

    async def get(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", url, params=params)

    async def post(self, url: str, json: Any = None, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", url, json=json, params=params)

    async def put(self, url: str, json: Any = None, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("PUT", url, json=json, params=params)

    async def patch(self, url: str, json: Any = None, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("PATCH", url, json=json, params=params)

    async def delete(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", url, params=params)

    async def get_or_none(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        """GET where 404 is an expected answer rather than an error."""
        try:
            return await self.get(url, params=params)
        except NotFoundError:
            return None

    async def paginate(
        self,
        url: str,
        key: str = "items",
        *,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        """Collect `key` across all pages.

        Google pages carry `nextPageToken`, sent back as `pageToken` on the
        same URL. Graph pages carry an absolute `@odata.nextLink`.
        """
        items: list[Any] = []
        next_url: str | None = url
        page_params = dict(params or {})
        while next_url:
            data = await self.get(next_url, params=page_params or None)
            if not isinstance(data, dict):
                break
            items.extend(data.get(key) or [])
            page_token = data.get("nextPageToken")
            if page_token:
                page_params = {**(params or {}), "pageToken": page_token}
                continue
            next_url = data.get("@odata.nextLink") or data.get("nextLink")
            page_params = {}
        return items


__all__ = [
    "ApiClient",
    "Endpoints",
    "GOOGLE",
    "MICROSOFT",
    "raise_for_status",
]
