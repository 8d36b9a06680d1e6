"""Attach a claims mapping policy that emits the basic claim set."""

import json

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ConflictError, ExecuteFailed, HttpError, NotFoundError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.variables import Var

STEP_ID = "setup-microsoft-claims-policy"

POLICY_DEFINITION = json.dumps(
    {"ClaimsMappingPolicy": {"Version": 1, "IncludeBasicClaimSet": True, "ClaimsSchema": []}},
    separators=(",", ":"),
)


async def check(ctx: CheckContext) -> None:
    sp_id = ctx.vars.require(Var.SSO_SERVICE_PRINCIPAL_ID)
    try:
        data = await ctx.microsoft.get(Endpoints.ms_read_claims_policy(sp_id))
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check claims policy", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    policies = data.get("value") or []
    if policies:
        ctx.log(LogLevel.INFO, "Claims policy already assigned")
        ctx.mark_complete({Var.CLAIMS_POLICY_ID: policies[0]["id"]})
    else:
        ctx.mark_incomplete("Claims policy not assigned")


async def execute(ctx: ExecuteContext) -> None:
    sp_id = ctx.vars.require(Var.SSO_SERVICE_PRINCIPAL_ID)
    try:
        created = await ctx.microsoft.post(
            Endpoints.MS_CLAIMS_POLICIES,
            {
                "definition": [POLICY_DEFINITION],
                "displayName": ctx.vars.require(Var.CLAIMS_POLICY_DISPLAY_NAME),
                "isOrganizationDefault": False,
            },
        )
        policy_id = created.get("id")
    except ConflictError:
        existing = await ctx.microsoft.get(Endpoints.MS_CLAIMS_POLICIES)
        policies = existing.get("value") or []
        policy_id = policies[0].get("id") if policies else None
    if not policy_id:
        raise ExecuteFailed("Policy ID unavailable")

    try:
        await ctx.microsoft.post(
            Endpoints.ms_assign_claims_policy(sp_id),
            {"@odata.id": f"{Endpoints.GRAPH_V1}/policies/claimsMappingPolicies/{policy_id}"},
        )
    except ConflictError:
        ctx.log(LogLevel.INFO, "Claims policy already assigned")
    ctx.mark_complete({Var.CLAIMS_POLICY_ID: policy_id})


async def undo(ctx: UndoContext) -> None:
    sp_id = ctx.vars.get(Var.SSO_SERVICE_PRINCIPAL_ID)
    policy_id = ctx.vars.get(Var.CLAIMS_POLICY_ID)
    if not policy_id:
        ctx.mark_failed("Missing claims policy id")
        return
    try:
        if sp_id:
            await ctx.microsoft.delete(Endpoints.ms_unassign_claims_policy(sp_id, policy_id))
        await ctx.microsoft.delete(f"{Endpoints.MS_CLAIMS_POLICIES}/{policy_id}")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "Claims policy already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.MS_GRAPH_TOKEN, Var.SSO_SERVICE_PRINCIPAL_ID, Var.CLAIMS_POLICY_DISPLAY_NAME],
    provides=[Var.CLAIMS_POLICY_ID],
    check=check,
    execute=execute,
    undo=undo,
    title="Set up Microsoft claims policy",
)
