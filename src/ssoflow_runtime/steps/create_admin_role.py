"""Create a custom admin role for the provisioning account and assign it."""

from typing import Any

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ConflictError, ExecuteFailed, HttpError, NotFoundError
from ssoflow_runtime.http import ApiClient, Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps._common import find_in_tree
from ssoflow_runtime.variables import Var

STEP_ID = "create-admin-role-and-assign-user"

DEFAULT_ROLE_NAME = "Microsoft Entra Provisioning"

ROLE_PRIVILEGES = (
    "ORGANIZATION_UNITS_RETRIEVE",
    "USERS_RETRIEVE",
    "USERS_CREATE",
    "USERS_UPDATE",
    "GROUPS_ALL",
)


def _role_name(ctx: Any) -> str:
    return ctx.vars.get(Var.ADMIN_ROLE_NAME) or DEFAULT_ROLE_NAME


async def _find_role(google: ApiClient, name: str) -> dict[str, Any] | None:
    roles = await google.paginate(Endpoints.GOOGLE_ROLES, "items")
    return next((role for role in roles if role.get("roleName") == name), None)


async def _assignments(google: ApiClient, user_id: str) -> list[dict[str, Any]]:
    data = await google.get(Endpoints.GOOGLE_ROLE_ASSIGNMENTS, params={"userKey": user_id})
    return data.get("items") or []


def _role_vars(role: dict[str, Any]) -> dict[str, Any]:
    privileges = role.get("rolePrivileges") or [{}]
    return {Var.ADMIN_ROLE_ID: role.get("roleId"), Var.DIRECTORY_SERVICE_ID: privileges[0].get("serviceId")}


async def check(ctx: CheckContext) -> None:
    try:
        role = await _find_role(ctx.google, _role_name(ctx))
        if role is None:
            ctx.mark_incomplete("Custom admin role missing")
            return
        user_id = ctx.vars.require(Var.PROVISIONING_USER_ID)
        assignments = await _assignments(ctx.google, user_id)
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check custom role", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    if any(a.get("roleId") == role.get("roleId") for a in assignments):
        ctx.log(LogLevel.INFO, "Role and assignment exist")
        ctx.mark_complete(_role_vars(role))
    else:
        ctx.log(LogLevel.INFO, "Role exists without assignment")
        ctx.mark_incomplete("Role assignment missing", _role_vars(role))


async def execute(ctx: ExecuteContext) -> None:
    name = _role_name(ctx)
    privileges = await ctx.google.get(Endpoints.GOOGLE_ROLE_PRIVILEGES)
    match = find_in_tree(
        privileges.get("items") or [],
        lambda privilege: privilege.get("privilegeName") == "USERS_RETRIEVE",
        "childPrivileges",
    )
    if match is None:
        raise ExecuteFailed("Service ID not found in role privileges")
    service_id = match["serviceId"]

    role_id = ctx.check_data.get(Var.ADMIN_ROLE_ID)
    if not role_id:
        try:
            created = await ctx.google.post(
                Endpoints.GOOGLE_ROLES,
                {
                    "roleName": name,
                    "roleDescription": "Custom role for Microsoft provisioning",
                    "rolePrivileges": [
                        {"serviceId": service_id, "privilegeName": privilege} for privilege in ROLE_PRIVILEGES
                    ],
                },
            )
            role_id = created.get("roleId")
        except ConflictError:
            existing = await _find_role(ctx.google, name)
            role_id = existing.get("roleId") if existing else None
    if not role_id:
        raise ExecuteFailed("Role ID unavailable after create")

    try:
        await ctx.google.post(
            Endpoints.GOOGLE_ROLE_ASSIGNMENTS,
            {
                "roleId": role_id,
                "assignedTo": ctx.vars.require(Var.PROVISIONING_USER_ID),
                "scopeType": "CUSTOMER",
            },
        )
    except ConflictError:
        ctx.log(LogLevel.INFO, "Role already assigned")

    ctx.mark_complete({Var.ADMIN_ROLE_ID: role_id, Var.DIRECTORY_SERVICE_ID: service_id})


async def undo(ctx: UndoContext) -> None:
    role_id = ctx.vars.get(Var.ADMIN_ROLE_ID)
    user_id = ctx.vars.get(Var.PROVISIONING_USER_ID)
    if not role_id or not user_id:
        ctx.mark_failed("Missing role or user id")
        return
    try:
        for assignment in await _assignments(ctx.google, user_id):
            if assignment.get("roleId") == role_id:
                await ctx.google.delete(f"{Endpoints.GOOGLE_ROLE_ASSIGNMENTS}/{assignment['roleAssignmentId']}")
        await ctx.google.delete(f"{Endpoints.GOOGLE_ROLES}/{role_id}")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "Admin role already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.GOOGLE_ACCESS_TOKEN, Var.IS_DOMAIN_VERIFIED, Var.PROVISIONING_USER_ID],
    provides=[Var.ADMIN_ROLE_ID, Var.DIRECTORY_SERVICE_ID],
    check=check,
    execute=execute,
    undo=undo,
    title="Create admin role and assign user",
)
