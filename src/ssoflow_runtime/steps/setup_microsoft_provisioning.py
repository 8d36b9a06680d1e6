"""Start the Entra synchronization job that pushes users into Google."""

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import HttpError, NotFoundError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.variables import Var

STEP_ID = "setup-microsoft-provisioning"

SYNC_TEMPLATE_TAG = "gsuite"


async def check(ctx: CheckContext) -> None:
    sp_id = ctx.vars.require(Var.PROVISIONING_SERVICE_PRINCIPAL_ID)
    try:
        data = await ctx.microsoft.get(f"{Endpoints.ms_sync(sp_id)}/jobs")
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check sync jobs", {"error": e.message})
        ctx.mark_check_failed(e.message)
        return

    jobs = data.get("value") or []
    if any((job.get("status") or {}).get("code") != "Paused" for job in jobs):
        ctx.log(LogLevel.INFO, "Synchronization already active")
        ctx.mark_complete()
    else:
        ctx.mark_incomplete("Synchronization not started")


async def execute(ctx: ExecuteContext) -> None:
    sp_id = ctx.vars.require(Var.PROVISIONING_SERVICE_PRINCIPAL_ID)
    password = ctx.vars.require(Var.GENERATED_PASSWORD)
    sync = Endpoints.ms_sync(sp_id)

    templates = await ctx.microsoft.get(f"{sync}/templates")
    template_id = next(
        (t["id"] for t in templates.get("value") or [] if t.get("factoryTag") == SYNC_TEMPLATE_TAG),
        SYNC_TEMPLATE_TAG,
    )
    job = await ctx.microsoft.post(f"{sync}/jobs", {"templateId": template_id})
    await ctx.microsoft.put(
        f"{sync}/secrets",
        {
            "value": [
                {"key": "BaseAddress", "value": Endpoints.GOOGLE_DIRECTORY},
                {"key": "SecretToken", "value": password},
            ]
        },
    )
    job_id = job.get("id")
    if job_id:
        await ctx.microsoft.post(f"{sync}/jobs/{job_id}/start")
    ctx.log(LogLevel.INFO, "Microsoft provisioning setup completed")
    ctx.mark_complete()


async def undo(ctx: UndoContext) -> None:
    sp_id = ctx.vars.get(Var.PROVISIONING_SERVICE_PRINCIPAL_ID)
    if not sp_id:
        ctx.mark_failed("Missing service principal id")
        return
    sync = Endpoints.ms_sync(sp_id)
    try:
        data = await ctx.microsoft.get(f"{sync}/jobs")
        for job in data.get("value") or []:
            await ctx.microsoft.delete(f"{sync}/jobs/{job['id']}")
    except NotFoundError:
        ctx.log(LogLevel.INFO, "Synchronization jobs already removed")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.MS_GRAPH_TOKEN, Var.PROVISIONING_SERVICE_PRINCIPAL_ID, Var.GENERATED_PASSWORD],
    check=check,
    execute=execute,
    undo=undo,
    title="Set up Microsoft provisioning",
)
