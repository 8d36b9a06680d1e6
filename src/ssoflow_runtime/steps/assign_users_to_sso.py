"""Turn on SAML SSO for the whole domain, except the automation OU.

The root org unit is assigned to the Microsoft SAML profile and the
automation OU is excluded (SSO_OFF) so the provisioning account keeps
signing in with its password.
"""

from typing import Any

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import (
    ExecuteFailed,
    HttpError,
    NotFoundError,
    WorkflowError,
    is_bad_request,
    is_conflict,
    is_http_error,
    is_not_found,
    is_precondition_failed,
)
from ssoflow_runtime.http import ApiClient, Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import operation_error, org_unit_target, resource_id
from ssoflow_runtime.variables import Var

STEP_ID = "assign-users-to-sso"

SAML_SSO = "SAML_SSO"
SSO_OFF = "SSO_OFF"

DONE = "done"
PENDING = "pending"


async def _root_target(google: ApiClient) -> str:
    data = await google.get(
        Endpoints.GOOGLE_ORG_UNITS,
        params={"orgUnitPath": "/", "type": "allIncludingParent"},
    )
    units = data.get("organizationUnits") or []
    if not units:
        raise WorkflowError("No organizational units found")
    root = next(
        (u for u in units if not u.get("parentOrgUnitId") or u.get("orgUnitPath") == "/"),
        None,
    )
    if root is None:
        known = {u.get("orgUnitId") for u in units}
        root = next((u for u in units if u.get("parentOrgUnitId") not in known), None)
    if root is None:
        raise WorkflowError("Cannot determine root organizational unit")
    return org_unit_target(root["orgUnitId"])


async def _automation_target(google: ApiClient, path: str) -> str:
    unit = await google.get(f"{Endpoints.GOOGLE_ORG_UNITS}/{path.lstrip('/')}")
    if not unit.get("orgUnitId"):
        raise WorkflowError(f"Org unit id missing for {path}")
    return org_unit_target(unit["orgUnitId"])


def _target_of(assignment: dict[str, Any]) -> str | None:
    target = assignment.get("targetOrgUnit")
    return org_unit_target(target) if target else None


def _is_root_assignment(assignment: dict[str, Any], target: str, profile_id: str) -> bool:
    profile = (assignment.get("samlSsoInfo") or {}).get("inboundSamlSsoProfile")
    return _target_of(assignment) == target and assignment.get("ssoMode") == SAML_SSO and profile == profile_id


def _is_exclusion(assignment: dict[str, Any], target: str) -> bool:
    return _target_of(assignment) == target and assignment.get("ssoMode") == SSO_OFF


async def _assignments(google: ApiClient) -> list[dict[str, Any]]:
    return await google.paginate(Endpoints.GOOGLE_SSO_ASSIGNMENTS, "inboundSsoAssignments")


async def _targets(ctx: Any) -> tuple[str, str]:
    root = await _root_target(ctx.google)
    automation = await _automation_target(ctx.google, ctx.vars.require(Var.AUTOMATION_OU_PATH))
    return root, automation


async def check(ctx: CheckContext) -> None:
    profile_id = ctx.vars.require(Var.SAML_PROFILE_ID)
    try:
        assignments = await _assignments(ctx.google)
        root, automation = await _targets(ctx)
    except (HttpError, WorkflowError) as e:
        ctx.log(LogLevel.ERROR, "Failed to check SSO assignment", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    root_assigned = any(_is_root_assignment(a, root, profile_id) for a in assignments)
    excluded = any(_is_exclusion(a, automation) for a in assignments)
    if root_assigned and excluded:
        ctx.log(LogLevel.INFO, "All users already assigned to SSO")
        ctx.mark_complete()
    else:
        ctx.mark_incomplete("Users not assigned to SSO")


async def _assert_profile_ready(google: ApiClient, profile_id: str) -> None:
    profile_url = Endpoints.google_resource(profile_id)
    profile = await google.get(profile_url)
    credentials = await google.get_or_none(f"{profile_url}/idpCredentials") or {}
    idp = profile.get("idpConfig") or {}
    if not idp.get("entityId"):
        raise ExecuteFailed("Missing SAML entity ID in Google profile")
    if not idp.get("singleSignOnServiceUri"):
        raise ExecuteFailed("Missing SSO login URL in Google profile")
    if not credentials.get("idpCredentials"):
        raise ExecuteFailed("No SAML signing certificate on Google profile")


async def _delete_assignment(ctx: Any, assignment: dict[str, Any]) -> None:
    name = resource_id(assignment["name"], "inboundSsoAssignments")
    try:
        await ctx.google.delete(f"{Endpoints.GOOGLE_SSO_ASSIGNMENTS}/{name}")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "SSO assignment already deleted", {"name": name})


async def _apply(
    ctx: ExecuteContext,
    target: str,
    assignment: dict[str, Any],
    label: str,
    replace: bool = True,
) -> str:
    payload = {"targetOrgUnit": target, **assignment}
    ctx.log(LogLevel.INFO, f"Assigning {label} to SSO", payload)
    try:
        operation = await ctx.google.post(Endpoints.GOOGLE_SSO_ASSIGNMENTS, payload)
    except HttpError as e:
        if replace and is_bad_request(e) and "already exists" in (e.detail or ""):
            existing = next((a for a in await _assignments(ctx.google) if _target_of(a) == target), None)
            if existing is not None:
                ctx.log(LogLevel.INFO, f"Replacing existing {label} assignment")
                await _delete_assignment(ctx, existing)
                return await _apply(ctx, target, assignment, label, replace=False)
        if is_http_error(e, 503):
            ctx.log(LogLevel.INFO, f"{label} assignment service unavailable")
            return PENDING
        raise

    if not operation.get("done"):
        return PENDING
    error = operation_error(operation)
    if error:
        raise ExecuteFailed(error)
    return DONE


async def execute(ctx: ExecuteContext) -> None:
    profile_id = ctx.vars.require(Var.SAML_PROFILE_ID)
    try:
        await _assert_profile_ready(ctx.google, profile_id)
        root, automation = await _targets(ctx)
        root_state = await _apply(
            ctx,
            root,
            {"samlSsoInfo": {"inboundSamlSsoProfile": profile_id}, "ssoMode": SAML_SSO},
            "root org unit",
        )
        if root_state == PENDING:
            ctx.mark_pending("User assignment operation in progress")
            return
        if await _apply(ctx, automation, {"ssoMode": SSO_OFF}, "automation org unit") == PENDING:
            ctx.mark_pending("Automation OU exclusion in progress")
            return
    except HttpError as e:
        if is_conflict(e) or is_precondition_failed(e):
            ctx.log(LogLevel.INFO, "Assignment already exists")
        elif is_not_found(e):
            ctx.mark_incomplete("SAML profile missing. Run 'Complete Google SSO setup' first.")
            return
        elif is_bad_request(e):
            ctx.mark_incomplete("SSO profile incomplete or missing. Run 'Complete Google SSO setup' first.")
            return
        else:
            raise
    ctx.mark_complete()


async def undo(ctx: UndoContext) -> None:
    profile_id = ctx.vars.require(Var.SAML_PROFILE_ID)
    assignments = await _assignments(ctx.google)
    root, automation = await _targets(ctx)
    for assignment in assignments:
        if _is_root_assignment(assignment, root, profile_id) or _is_exclusion(assignment, automation):
            await _delete_assignment(ctx, assignment)
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.GOOGLE_ACCESS_TOKEN, Var.SAML_PROFILE_ID, Var.IS_DOMAIN_VERIFIED, Var.AUTOMATION_OU_PATH],
    check=check,
    execute=execute,
    undo=undo,
    title="Assign users to SSO",
)
