"""Helpers shared by the federation steps."""

import re
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from ssoflow_runtime.http import ApiClient, Endpoints

MICROSOFT_LOGIN = "https://login.microsoftonline.com"
CHANGE_PASSWORD_URI = "https://account.activedirectory.windowsazure.com/ChangePassword.aspx"

# Gallery template shared by the provisioning and SSO enterprise apps
GOOGLE_WORKSPACE_TEMPLATE_ID = "01303a13-8322-4e06-bee5-80d612907131"

_FRACTION = re.compile(r"\.(\d{6})\d+")


def find_in_tree(
    items: Iterable[dict[str, Any]],
    predicate: Callable[[dict[str, Any]], bool],
    children_key: str,
) -> dict[str, Any] | None:
    """Depth-first search through nested dicts."""
    for item in items:
        if predicate(item):
            return item
        found = find_in_tree(item.get(children_key) or [], predicate, children_key)
        if found is not None:
            return found
    return None


def resource_id(name: str, collection: str) -> str:
    """Last path segment of a resource name within a collection.

    "inboundSamlSsoProfiles/abc" -> "abc"; names outside the collection
    are returned unchanged.
    """
    prefix = f"{collection}/"
    if prefix in name:
        return name.split(prefix, 1)[1]
    return name


def org_unit_target(org_unit_id: str) -> str:
    """Cloud Identity target for a Directory org unit id ("id:abc" -> "orgUnits/abc")."""
    bare = resource_id(org_unit_id, "orgUnits")
    if bare.startswith("id:"):
        bare = bare[3:]
    return f"orgUnits/{bare}"


def parse_timestamp(value: str) -> datetime:
    """Parse Graph ISO-8601 timestamps, which may carry 7 fractional digits."""
    text = _FRACTION.sub(r".\1", value.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def active_certificate(certificates: Iterable[dict[str, Any]], now: datetime | None = None) -> str | None:
    """Key of the first certificate that is currently valid and has key material."""
    now = now or datetime.now(timezone.utc)
    for cert in certificates:
        key = cert.get("key")
        if not key or not cert.get("startDateTime") or not cert.get("endDateTime"):
            continue
        if parse_timestamp(cert["startDateTime"]) <= now <= parse_timestamp(cert["endDateTime"]):
            return key
    return None


async def signing_certificates(microsoft: ApiClient, sp_id: str) -> list[dict[str, Any]]:
    data = await microsoft.get_or_none(Endpoints.ms_token_signing_certificates(sp_id))
    if not data:
        return []
    return data.get("value") or []


async def tenant_id(microsoft: ApiClient) -> str | None:
    data = await microsoft.get(Endpoints.MS_ORGANIZATION)
    organizations = data.get("value") or []
    if not organizations:
        return None
    return organizations[0].get("id")


def saml_login_url(tenant: str) -> str:
    return f"{MICROSOFT_LOGIN}/{tenant}/saml2"


def sts_entity_id(tenant: str) -> str:
    return f"https://sts.windows.net/{tenant}/"


def to_pem(certificate: str) -> str:
    if "BEGIN CERTIFICATE" in certificate:
        return certificate
    return f"-----BEGIN CERTIFICATE-----\n{certificate}\n-----END CERTIFICATE-----"


def operation_error(operation: Any) -> str | None:
    """Error message of a finished Google long-running operation, if any."""
    if not isinstance(operation, dict):
        return None
    error = operation.get("error")
    if isinstance(error, dict):
        return error.get("message") or "Operation failed"
    return None


def odata_filter(expression: str) -> dict[str, str]:
    return {"$filter": expression}
