"""Create the organizational unit that holds automation accounts."""

from urllib.parse import quote

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ConflictError, HttpError, NotFoundError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.variables import Var

STEP_ID = "create-automation-ou"


async def check(ctx: CheckContext) -> None:
    name = ctx.vars.require(Var.AUTOMATION_OU_NAME)
    try:
        await ctx.google.get(f"{Endpoints.GOOGLE_ORG_UNITS}/{quote(name)}")
    except NotFoundError:
        ctx.mark_incomplete("Automation OU missing")
        return
    except HttpError as e:
        ctx.mark_check_failed(e.message)
        return
    ctx.log(LogLevel.INFO, "Automation OU exists")
    ctx.mark_complete()


async def execute(ctx: ExecuteContext) -> None:
    name = ctx.vars.require(Var.AUTOMATION_OU_NAME)
    try:
        await ctx.google.post(Endpoints.GOOGLE_ORG_UNITS, {"name": name, "parentOrgUnitPath": "/"})
    except ConflictError:
        ctx.log(LogLevel.INFO, "Automation OU already exists")
    ctx.mark_complete()


async def undo(ctx: UndoContext) -> None:
    path = ctx.vars.require(Var.AUTOMATION_OU_PATH)
    try:
        await ctx.google.delete(f"{Endpoints.GOOGLE_ORG_UNITS}/{quote(path.lstrip('/'))}")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "Automation OU already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[
        Var.GOOGLE_ACCESS_TOKEN,
        Var.IS_DOMAIN_VERIFIED,
        Var.AUTOMATION_OU_NAME,
        Var.AUTOMATION_OU_PATH,
    ],
    check=check,
    execute=execute,
    undo=undo,
    title="Create automation OU",
)
