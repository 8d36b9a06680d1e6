"""Create the inbound SAML profile Google uses to trust Microsoft."""

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import HttpError, NotFoundError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import operation_error
from ssoflow_runtime.variables import Var

STEP_ID = "configure-google-saml-profile"


def _profile_vars(profile: dict) -> dict:
    sp_config = profile.get("spConfig") or {}
    return {
        Var.SAML_PROFILE_ID: profile.get("name"),
        Var.ENTITY_ID: sp_config.get("entityId"),
        Var.ACS_URL: sp_config.get("assertionConsumerServiceUri"),
    }


async def check(ctx: CheckContext) -> None:
    try:
        profiles = await ctx.google.paginate(Endpoints.GOOGLE_SSO_PROFILES, "inboundSamlSsoProfiles")
    except HttpError as e:
        ctx.mark_check_failed(e.message)
        return

    if not profiles:
        ctx.mark_incomplete("SAML profile missing")
        return
    ctx.log(LogLevel.INFO, "SAML profile already exists", {"name": profiles[0].get("name")})
    ctx.mark_complete(_profile_vars(profiles[0]))


async def execute(ctx: ExecuteContext) -> None:
    operation = await ctx.google.post(
        Endpoints.GOOGLE_CUSTOMER_SSO_PROFILES,
        {
            "displayName": ctx.vars.require(Var.SAML_PROFILE_DISPLAY_NAME),
            "idpConfig": {"entityId": "", "singleSignOnServiceUri": ""},
        },
    )
    if not operation.get("done"):
        ctx.mark_pending("SAML profile creation in progress")
        return
    error = operation_error(operation)
    if error:
        ctx.mark_incomplete(error)
        return
    ctx.mark_complete(_profile_vars(operation.get("response") or {}))


async def undo(ctx: UndoContext) -> None:
    profile_id = ctx.vars.get(Var.SAML_PROFILE_ID)
    if not profile_id:
        ctx.mark_failed("Missing SAML profile id")
        return
    try:
        await ctx.google.delete(Endpoints.google_resource(profile_id))
    except NotFoundError:
        ctx.log(LogLevel.INFO, "SAML profile already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.GOOGLE_ACCESS_TOKEN, Var.IS_DOMAIN_VERIFIED, Var.SAML_PROFILE_DISPLAY_NAME],
    provides=[Var.SAML_PROFILE_ID, Var.ENTITY_ID, Var.ACS_URL],
    check=check,
    execute=execute,
    undo=undo,
    title="Configure Google SAML profile",
)
