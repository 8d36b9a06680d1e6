"""Switch the SSO app to SAML and mint its token signing certificate."""

from datetime import datetime, timedelta, timezone

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ExecuteFailed, HttpError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import (
    active_certificate,
    odata_filter,
    saml_login_url,
    signing_certificates,
    sts_entity_id,
    tenant_id,
)
from ssoflow_runtime.variables import Var

STEP_ID = "configure-microsoft-sso"

CERTIFICATE_NAME = "CN=Google Workspace SSO"
CERTIFICATE_LIFETIME = timedelta(days=365)


def _sso_vars(certificate: str, tenant: str) -> dict[str, str]:
    return {
        Var.MS_SIGNING_CERTIFICATE: certificate,
        Var.MS_SSO_LOGIN_URL: saml_login_url(tenant),
        Var.MS_SSO_ENTITY_ID: sts_entity_id(tenant),
    }


async def check(ctx: CheckContext) -> None:
    sp_id = ctx.vars.require(Var.SSO_SERVICE_PRINCIPAL_ID)
    try:
        sp = await ctx.microsoft.get(
            f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}",
            params={"$select": "preferredSingleSignOnMode,samlSingleSignOnSettings"},
        )
        if sp.get("preferredSingleSignOnMode") != "saml":
            ctx.mark_incomplete("Microsoft SSO not configured")
            return
        certificate = active_certificate(await signing_certificates(ctx.microsoft, sp_id))
        tenant = await tenant_id(ctx.microsoft) if certificate else None
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check SSO configuration", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    if not certificate or not tenant:
        ctx.mark_incomplete("SSO configured but certificate missing")
        return
    ctx.log(LogLevel.INFO, "Microsoft SSO already configured")
    ctx.mark_complete(_sso_vars(certificate, tenant))


async def execute(ctx: ExecuteContext) -> None:
    sp_id = ctx.vars.require(Var.SSO_SERVICE_PRINCIPAL_ID)
    app_id = ctx.vars.require(Var.SSO_APP_ID)
    sp_url = f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sp_id}"

    ctx.log(LogLevel.INFO, "Setting SSO mode to SAML")
    await ctx.microsoft.patch(sp_url, {"preferredSingleSignOnMode": "saml"})
    tenant = await tenant_id(ctx.microsoft)
    if not tenant:
        raise ExecuteFailed("Unable to determine Microsoft tenant ID")
    await ctx.microsoft.patch(sp_url, {"samlSingleSignOnSettings": {"relayState": ""}})

    apps = await ctx.microsoft.get(Endpoints.MS_APPLICATIONS, params=odata_filter(f"appId eq '{app_id}'"))
    matches = apps.get("value") or []
    if not matches:
        raise ExecuteFailed("Unable to find application object")
    ctx.log(LogLevel.INFO, "Configuring application URLs")
    await ctx.microsoft.patch(
        f"{Endpoints.MS_APPLICATIONS}/{matches[0]['id']}",
        {
            "identifierUris": [ctx.vars.require(Var.ENTITY_ID)],
            "web": {"redirectUris": [ctx.vars.require(Var.ACS_URL)]},
        },
    )

    ctx.log(LogLevel.INFO, "Creating SAML signing certificate")
    expires = datetime.now(timezone.utc) + CERTIFICATE_LIFETIME
    certificate = await ctx.microsoft.post(
        Endpoints.ms_add_token_signing_certificate(sp_id),
        {"displayName": CERTIFICATE_NAME, "endDateTime": expires.isoformat().replace("+00:00", "Z")},
    )
    if not certificate.get("key"):
        raise ExecuteFailed("Failed to generate signing certificate")
    ctx.mark_complete(_sso_vars(certificate["key"], tenant))


async def undo(ctx: UndoContext) -> None:
    # The SAML settings go away with the app itself
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.MS_GRAPH_TOKEN, Var.SSO_SERVICE_PRINCIPAL_ID, Var.SSO_APP_ID, Var.ENTITY_ID, Var.ACS_URL],
    provides=[Var.MS_SIGNING_CERTIFICATE, Var.MS_SSO_LOGIN_URL, Var.MS_SSO_ENTITY_ID],
    check=check,
    execute=execute,
    undo=undo,
    title="Configure Microsoft SSO",
)
