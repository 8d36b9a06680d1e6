"""Confirm the Google Workspace primary domain is verified.

When it is not, check requests a DNS TXT token from the Site Verification
API and execute asks Google to verify it. Until the record propagates,
execute leaves the step Pending with the record to add.
"""

import logging

from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.exceptions import HttpError, error_message
from ssoflow_runtime.http import Endpoints
from ssoflow_runtime.models import LogLevel
from ssoflow_runtime.step import define_step
from ssoflow_runtime.variables import Var

logger = logging.getLogger(__name__)

STEP_ID = "verify-primary-domain"


def _site(domain: str) -> dict[str, str]:
    return {"type": "INET_DOMAIN", "identifier": domain}


async def check(ctx: CheckContext) -> None:
    try:
        data = await ctx.google.get(Endpoints.GOOGLE_DOMAINS)
    except HttpError as e:
        ctx.log(LogLevel.ERROR, "Failed to check domains", {"error": e.message})
        ctx.mark_check_failed(error_message(e, "Failed to check domains"))
        return

    primary = next((d for d in data.get("domains") or [] if d.get("isPrimary")), None)
    if primary is None:
        ctx.mark_incomplete("No primary domain found", {Var.IS_DOMAIN_VERIFIED: False})
        return

    domain = primary["domainName"]
    if primary.get("verified"):
        ctx.log(LogLevel.INFO, "Primary domain already verified")
        ctx.mark_complete({Var.IS_DOMAIN_VERIFIED: True, Var.PRIMARY_DOMAIN: domain})
        return

    try:
        token = await ctx.google.post(
            f"{Endpoints.GOOGLE_SITE_VERIFICATION}/token",
            {"site": _site(domain), "verificationMethod": "DNS_TXT"},
        )
    except HttpError as e:
        ctx.log(LogLevel.WARN, "Could not obtain verification token", {"error": e.message})
        ctx.mark_incomplete("Domain not verified", {Var.IS_DOMAIN_VERIFIED: False, Var.PRIMARY_DOMAIN: domain})
        return

    ctx.mark_incomplete(
        "Domain verification pending",
        {
            Var.IS_DOMAIN_VERIFIED: False,
            Var.PRIMARY_DOMAIN: domain,
            Var.VERIFICATION_TOKEN: token.get("token"),
        },
    )


async def execute(ctx: ExecuteContext) -> None:
    domain = ctx.vars.get(Var.PRIMARY_DOMAIN)
    if not domain:
        ctx.mark_incomplete("No primary domain to verify")
        return

    try:
        await ctx.google.post(
            f"{Endpoints.GOOGLE_SITE_VERIFICATION}/webResource",
            {"site": _site(domain)},
            params={"verificationMethod": "DNS_TXT"},
        )
    except HttpError as e:
        token = ctx.vars.get(Var.VERIFICATION_TOKEN)
        if not token:
            ctx.mark_incomplete(f"Unable to verify domain: {e.message}")
            return
        logger.info("Verification of %s not yet possible: %s", domain, e.message)
        ctx.mark_pending(
            f"Add TXT record to DNS: {token}\n"
            f"Record name: @ or {domain}\n"
            "Re-run this step once DNS propagates."
        )
        return

    ctx.log(LogLevel.INFO, "Domain verified successfully")
    ctx.mark_complete({Var.IS_DOMAIN_VERIFIED: True, Var.PRIMARY_DOMAIN: domain})


async def undo(ctx: UndoContext) -> None:
    # Verification cannot be withdrawn through the API
    ctx.mark_reverted()


STEP = define_step(
    STEP_ID,
    requires=[Var.GOOGLE_ACCESS_TOKEN],
    provides=[Var.IS_DOMAIN_VERIFIED, Var.PRIMARY_DOMAIN],
    check=check,
    execute=execute,
    undo=undo,
    title="Verify primary domain",
)
