"""Create the Google account Microsoft uses to provision users.

The password is only known at creation time. If the account exists but
the password was lost, the step is Stale and re-running it resets the
password.
"""

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import ConflictError, HttpError, NotFoundError, PreconditionFailedError
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.steps.password import generate_password
from ssoflow_runtime.variables import Var

STEP_ID = "create-service-user"

EMAIL_TEMPLATE = "{provisioningUserPrefix}@{primaryDomain}"


async def check(ctx: CheckContext) -> None:
    email = ctx.vars.build(EMAIL_TEMPLATE)
    try:
        user = await ctx.google.get(f"{Endpoints.GOOGLE_USERS}/{email}")
    except NotFoundError:
        ctx.log(LogLevel.DEBUG, "Service user missing")
        ctx.mark_incomplete("Service user missing")
        return
    except HttpError as e:
        ctx.mark_check_failed(e.message)
        return

    if not user.get("id") or not user.get("primaryEmail"):
        ctx.mark_check_failed("Malformed user object returned", user)
        return

    found = {Var.PROVISIONING_USER_ID: user["id"], Var.PROVISIONING_USER_EMAIL: user["primaryEmail"]}
    if not ctx.vars.has(Var.GENERATED_PASSWORD):
        ctx.mark_stale("User exists but password lost. Re-run to generate new password.", found)
        return
    ctx.log(LogLevel.INFO, "Service user already exists")
    ctx.mark_complete(found)


async def execute(ctx: ExecuteContext) -> None:
    email = ctx.vars.build(EMAIL_TEMPLATE)
    password = generate_password()
    try:
        user = await ctx.google.post(
            Endpoints.GOOGLE_USERS,
            {
                "primaryEmail": email,
                "name": {"givenName": "Microsoft", "familyName": "Provisioning"},
                "password": password,
                "orgUnitPath": ctx.vars.require(Var.AUTOMATION_OU_PATH),
            },
        )
    except ConflictError:
        ctx.log(LogLevel.INFO, "Service user exists, resetting its password")
        user = await ctx.google.get(f"{Endpoints.GOOGLE_USERS}/{email}")
        await ctx.google.put(f"{Endpoints.GOOGLE_USERS}/{user['id']}", {"password": password})

    ctx.mark_complete(
        {
            Var.PROVISIONING_USER_ID: user.get("id"),
            Var.PROVISIONING_USER_EMAIL: user.get("primaryEmail", email),
            Var.GENERATED_PASSWORD: password,
        }
    )


async def undo(ctx: UndoContext) -> None:
    user_id = ctx.vars.get(Var.PROVISIONING_USER_ID)
    if not user_id:
        ctx.mark_failed("Missing provisioning user id")
        return
    try:
        await ctx.google.delete(f"{Endpoints.GOOGLE_USERS}/{user_id}")
    except (NotFoundError, PreconditionFailedError):
        ctx.log(LogLevel.INFO, "Service user already deleted")
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[
        Var.GOOGLE_ACCESS_TOKEN,
        Var.IS_DOMAIN_VERIFIED,
        Var.PRIMARY_DOMAIN,
        Var.PROVISIONING_USER_PREFIX,
        Var.AUTOMATION_OU_PATH,
    ],
    provides=[Var.PROVISIONING_USER_ID, Var.PROVISIONING_USER_EMAIL, Var.GENERATED_PASSWORD],
    check=check,
    execute=execute,
    undo=undo,
    title="Create provisioning service user",
)
