"""Instantiate the Google Workspace gallery app twice in Microsoft Entra.

One instance drives user provisioning, the other SAML single sign-on.
Both come from the same gallery template and are told apart by display
name.
"""

from typing import Any

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import HttpError, NotFoundError
from ssoflow_runtime.http import ApiClient, Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import GOOGLE_WORKSPACE_TEMPLATE_ID, odata_filter
from ssoflow_runtime.variables import Var

STEP_ID = "create-microsoft-apps"


def _by_name(apps: list[dict[str, Any]], name: str | None) -> dict[str, Any] | None:
    return next((app for app in apps if app.get("displayName") == name), None)


async def _service_principal_id(microsoft: ApiClient, app_id: str) -> str | None:
    principals = await microsoft.paginate(
        Endpoints.MS_SERVICE_PRINCIPALS, "value", params=odata_filter(f"appId eq '{app_id}'")
    )
    return principals[0].get("id") if principals else None


async def check(ctx: CheckContext) -> None:
    try:
        apps = await ctx.microsoft.paginate(
            Endpoints.MS_APPLICATIONS,
            "value",
            params=odata_filter(f"applicationTemplateId eq '{GOOGLE_WORKSPACE_TEMPLATE_ID}'"),
        )
        provisioning = _by_name(apps, ctx.vars.get(Var.PROVISIONING_APP_DISPLAY_NAME))
        if provisioning is None and apps:
            provisioning = apps[0]
        sso = _by_name(apps, ctx.vars.get(Var.SSO_APP_DISPLAY_NAME)) or provisioning
        if provisioning is None or sso is None:
            ctx.mark_incomplete("Microsoft apps not found")
            return

        provisioning_sp = await _service_principal_id(ctx.microsoft, provisioning["appId"])
        sso_sp = await _service_principal_id(ctx.microsoft, sso["appId"])
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check Microsoft apps", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    if not provisioning_sp or not sso_sp:
        ctx.mark_incomplete("Microsoft service principals not found")
        return
    if provisioning["appId"] == sso["appId"]:
        ctx.log(LogLevel.INFO, "Provisioning and SSO use the same app")
    ctx.mark_complete(
        {
            Var.PROVISIONING_SERVICE_PRINCIPAL_ID: provisioning_sp,
            Var.SSO_SERVICE_PRINCIPAL_ID: sso_sp,
            Var.SSO_APP_ID: sso["appId"],
        }
    )


async def _instantiate(microsoft: ApiClient, display_name: str) -> dict[str, Any]:
    return await microsoft.post(
        Endpoints.ms_template_instantiate(GOOGLE_WORKSPACE_TEMPLATE_ID),
        {"displayName": display_name},
    )


async def execute(ctx: ExecuteContext) -> None:
    provisioning = await _instantiate(ctx.microsoft, ctx.vars.require(Var.PROVISIONING_APP_DISPLAY_NAME))
    sso = await _instantiate(ctx.microsoft, ctx.vars.require(Var.SSO_APP_DISPLAY_NAME))
    ctx.mark_complete(
        {
            Var.PROVISIONING_SERVICE_PRINCIPAL_ID: (provisioning.get("servicePrincipal") or {}).get("id"),
            Var.SSO_SERVICE_PRINCIPAL_ID: (sso.get("servicePrincipal") or {}).get("id"),
            Var.SSO_APP_ID: (sso.get("application") or {}).get("appId"),
        }
    )


async def undo(ctx: UndoContext) -> None:
    provisioning_sp = ctx.vars.get(Var.PROVISIONING_SERVICE_PRINCIPAL_ID)
    sso_sp = ctx.vars.get(Var.SSO_SERVICE_PRINCIPAL_ID)
    app_id = ctx.vars.get(Var.SSO_APP_ID)
    try:
        if provisioning_sp:
            await ctx.microsoft.delete(f"{Endpoints.MS_SERVICE_PRINCIPALS}/{provisioning_sp}")
        if sso_sp and sso_sp != provisioning_sp:
            await ctx.microsoft.delete(f"{Endpoints.MS_SERVICE_PRINCIPALS}/{sso_sp}")
        if app_id:
            await ctx.microsoft.delete(f"{Endpoints.GRAPH_V1}/applications(appId='{app_id}')")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "Microsoft apps already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.MS_GRAPH_TOKEN],
    provides=[Var.PROVISIONING_SERVICE_PRINCIPAL_ID, Var.SSO_SERVICE_PRINCIPAL_ID, Var.SSO_APP_ID],
    check=check,
    execute=execute,
    undo=undo,
    title="Create Microsoft enterprise apps",
)
