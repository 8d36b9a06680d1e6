"""Step definitions.

A step is plain data plus three function references. There is no step base
class: each concrete step module builds a `Step` with `define_step` and the
engine calls its operations with a phase-specific context.

Usage:
    async def check(ctx: CheckContext) -> None:
        if await ctx.google.get_or_none(url):
            ctx.mark_complete()
        else:
            ctx.mark_incomplete("Org unit missing")

    async def execute(ctx: ExecuteContext) -> None:
        await ctx.google.post(url, json={"name": "Automation"})
        ctx.mark_complete()

    CREATE_OU = define_step(
        "create-automation-ou",
        requires=["googleAccessToken"],
        check=check,
        execute=execute,
    )
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext

CheckFn = Callable[["CheckContext"], Awaitable[None]]
ExecuteFn = Callable[["ExecuteContext"], Awaitable[None]]
UndoFn = Callable[["UndoContext"], Awaitable[None]]


@dataclass(frozen=True)
class Step:
    """A named unit of idempotent provisioning work."""

    id: str
    requires: tuple[str, ...]
    provides: tuple[str, ...]
    check: CheckFn
    execute: ExecuteFn
    undo: UndoFn | None = None
    title: str = ""

    @property
    def reversible(self) -> bool:
        return self.undo is not None


def define_step(
    step_id: str,
    *,
    check: CheckFn,
    execute: ExecuteFn,
    undo: UndoFn | None = None,
    requires: Iterable[str] = (),
    provides: Iterable[str] = (),
    title: str = "",
) -> Step:
    """Build a Step, normalizing variable lists to tuples.

    Raises:
        ValueError: If a variable is listed twice in requires or provides
    """
    requires = tuple(requires)
    provides = tuple(provides)
    for label, names in (("requires", requires), ("provides", provides)):
        if len(set(names)) != len(names):
            raise ValueError(f"Step {step_id} lists a variable twice in {label}")
    return Step(
        id=step_id,
        requires=requires,
        provides=provides,
        check=check,
        execute=execute,
        undo=undo,
        title=title or step_id.replace("-", " ").capitalize(),
    )
