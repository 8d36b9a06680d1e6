"""Point the Google SAML profile at Microsoft and upload its certificate."""

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ExecuteFailed, HttpError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import (
    CHANGE_PASSWORD_URI,
    active_certificate,
    operation_error,
    saml_login_url,
    signing_certificates,
    sts_entity_id,
    tenant_id,
    to_pem,
)
from ssoflow_runtime.variables import Var

STEP_ID = "complete-google-sso-setup"

UPDATE_MASK = ",".join(
    [
        "idpConfig.entityId",
        "idpConfig.singleSignOnServiceUri",
        "idpConfig.signOutUri",
        "idpConfig.changePasswordUri",
    ]
)


async def check(ctx: CheckContext) -> None:
    profile_id = ctx.vars.require(Var.SAML_PROFILE_ID)
    try:
        profile = await ctx.google.get(Endpoints.google_resource(profile_id))
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check SSO configuration", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    idp = profile.get("idpConfig") or {}
    if idp.get("entityId") and idp.get("singleSignOnServiceUri"):
        ctx.log(LogLevel.INFO, "Google SSO already configured")
        ctx.mark_complete()
    else:
        ctx.mark_incomplete("Google SSO configuration incomplete")


def _finished(ctx: ExecuteContext, operation: dict, label: str) -> bool:
    """Report failure for an unfinished or failed operation."""
    if not operation.get("done"):
        ctx.mark_incomplete(f"{label} operation not completed")
        return False
    error = operation_error(operation)
    if error:
        ctx.log(LogLevel.ERROR, f"{label} failed", {"error": operation.get("error")})
        ctx.mark_incomplete(error)
        return False
    return True


async def execute(ctx: ExecuteContext) -> None:
    profile_id = ctx.vars.require(Var.SAML_PROFILE_ID)
    sp_id = ctx.vars.require(Var.SSO_SERVICE_PRINCIPAL_ID)

    tenant = await tenant_id(ctx.microsoft)
    if not tenant:
        raise ExecuteFailed("Unable to determine Microsoft tenant ID")

    ctx.log(LogLevel.INFO, "Fetching SAML certificate from Microsoft")
    certificate = active_certificate(await signing_certificates(ctx.microsoft, sp_id))
    if not certificate:
        raise ExecuteFailed("No active SAML signing certificate found")

    ctx.log(LogLevel.INFO, "Updating Google SAML profile with Microsoft configuration")
    profile_url = Endpoints.google_resource(profile_id)
    update = await ctx.google.patch(
        profile_url,
        {
            "idpConfig": {
                "entityId": sts_entity_id(tenant),
                "singleSignOnServiceUri": saml_login_url(tenant),
                "signOutUri": saml_login_url(tenant),
                "changePasswordUri": CHANGE_PASSWORD_URI,
            }
        },
        params={"updateMask": UPDATE_MASK},
    )
    if not _finished(ctx, update, "SAML profile update"):
        return

    ctx.log(LogLevel.INFO, "Uploading SAML certificate to Google")
    upload = await ctx.google.post(f"{profile_url}/idpCredentials:add", {"pemData": to_pem(certificate)})
    if not _finished(ctx, upload, "Certificate upload"):
        return
    ctx.mark_complete()


async def undo(ctx: UndoContext) -> None:
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.GOOGLE_ACCESS_TOKEN, Var.MS_GRAPH_TOKEN, Var.SAML_PROFILE_ID, Var.SSO_SERVICE_PRINCIPAL_ID],
    check=check,
    execute=execute,
    undo=undo,
    title="Complete Google SSO setup",
)
