"""Workflow session: the driving loop.

A session owns the variable store, per-step runtime state and the "already
checked" memo for one operator session. It gates every invocation on
variable availability, enforces single-flight per step, and re-checks
steps whose required variables changed.

Usage:
    definition = build_federation_workflow()
    session = WorkflowSession(definition, values={"googleAccessToken": token})

    await session.drive()                    # check everything that can run
    result = await session.run("create-automation-ou")

    async for event in session.stream("create-service-user"):
        print(event.type)
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

from ssoflow_runtime.engine import EventSink, OperationResult, StepRunner
from ssoflow_runtime.events import BaseStreamEvent, CompleteEvent, StateEvent, new_trace_id
from ssoflow_runtime.exceptions import SsoflowError, StepBusyError, error_message
from ssoflow_runtime.models import StepState, StepStatus
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.status import EffectiveStatus, compute_all, compute_effective_status
from ssoflow_runtime.var_store import VariableStore

logger = logging.getLogger(__name__)

# Streamed actions. Execute only runs behind a check, via "run".
ACTIONS = ("check", "run", "undo")

_EXECUTABLE = (StepStatus.READY, StepStatus.STALE)


class WorkflowSession:
    """Drives the steps of one workflow definition.

    Args:
        definition: Immutable step graph and variable catalog
        values: Initial variable values
        states: Previously stored per-step runtime state
        runner: StepRunner to use (defaults to one with real HTTP)
        revalidate_complete: When a required variable changes, re-check
            steps even if they are already Complete. With False, Complete
            steps are trusted and only the others are re-checked.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        *,
        values: Mapping[str, Any] | None = None,
        states: Mapping[str, StepState] | None = None,
        runner: StepRunner | None = None,
        revalidate_complete: bool = True,
    ) -> None:
        self.definition = definition
        self.store = VariableStore(values, definition)
        self.states: dict[str, StepState] = {step.id: StepState() for step in definition}
        for step_id, state in (states or {}).items():
            if step_id in self.states:
                self.states[step_id] = state
        self.runner = runner or StepRunner(definition)
        self.revalidate_complete = revalidate_complete
        self._checked: set[str] = set()
        self._check_data: dict[str, dict[str, Any]] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._subscription = self.store.subscribe_all(self._on_variable_changed)

    def close(self) -> None:
        """Stop observing the variable store."""
        self._subscription()

    def _on_variable_changed(self, name: str, value: Any) -> None:
        for step_id in self.definition.consumers_of(name):
            if not self.revalidate_complete and self.states[step_id].status == StepStatus.COMPLETE:
                continue
            if step_id in self._checked:
                logger.debug("%s changed, %s will be re-checked", name, step_id)
            self._checked.discard(step_id)

    # --- Status ---

    def state(self, step_id: str) -> StepState:
        self.definition.get(step_id)
        return self.states[step_id]

    def effective_status(self, step_id: str) -> EffectiveStatus:
        step = self.definition.get(step_id)
        return compute_effective_status(step, self.states[step_id].status, self.store, self.definition)

    def effective_statuses(self) -> dict[str, EffectiveStatus]:
        stored = {step_id: state.status for step_id, state in self.states.items()}
        return compute_all(self.definition, stored, self.store)

    def was_checked(self, step_id: str) -> bool:
        return step_id in self._checked

    def needs_check(self, step_id: str) -> bool:
        """True if the driving loop should check this step now."""
        if step_id in self._checked or self.states[step_id].busy:
            return False
        return not self.effective_status(step_id).blocked

    # --- Operations ---

    def _gate(self, step_id: str, trace_id: str, emit: EventSink | None) -> OperationResult | None:
        """Refuse busy steps; return a blocked result if requirements are unset."""
        step = self.definition.get(step_id)
        state = self.states[step_id]
        if state.busy:
            raise StepBusyError(step_id, state.busy)

        effective = compute_effective_status(step, state.status, self.store, self.definition)
        if not effective.blocked:
            return None

        state.block_reason = effective.block_reason
        if emit is not None:
            emit(
                StateEvent(
                    step_id=step_id,
                    trace_id=trace_id,
                    state={"status": StepStatus.BLOCKED.value, "block_reason": effective.block_reason},
                )
            )
        logger.info("Step %s is blocked: %s", step_id, effective.block_reason)
        return OperationResult(
            step_id=step_id,
            phase=None,
            status=StepStatus.BLOCKED,
            outcome="blocked",
            vars={},
            block_reason=effective.block_reason,
        )

    async def check(
        self,
        step_id: str,
        *,
        emit: EventSink | None = None,
        trace_id: str | None = None,
    ) -> OperationResult:
        trace_id = trace_id or new_trace_id()
        blocked = self._gate(step_id, trace_id, emit)
        if blocked is not None:
            return blocked
        self._checked.add(step_id)
        result = await self.runner.check(
            self.definition.get(step_id), self.store, self.states[step_id], trace_id=trace_id, emit=emit
        )
        self._check_data[step_id] = dict(result.vars)
        return result

    async def execute(
        self,
        step_id: str,
        *,
        check_data: Mapping[str, Any] | None = None,
        emit: EventSink | None = None,
        trace_id: str | None = None,
    ) -> OperationResult:
        trace_id = trace_id or new_trace_id()
        blocked = self._gate(step_id, trace_id, emit)
        if blocked is not None:
            return blocked
        if check_data is None:
            check_data = self._check_data.get(step_id, {})
        return await self.runner.execute(
            self.definition.get(step_id),
            self.store,
            self.states[step_id],
            trace_id=trace_id,
            check_data=check_data,
            emit=emit,
        )

    async def undo(
        self,
        step_id: str,
        *,
        emit: EventSink | None = None,
        trace_id: str | None = None,
    ) -> OperationResult:
        trace_id = trace_id or new_trace_id()
        blocked = self._gate(step_id, trace_id, emit)
        if blocked is not None:
            return blocked
        result = await self.runner.undo(
            self.definition.get(step_id), self.store, self.states[step_id], trace_id=trace_id, emit=emit
        )
        self._check_data.pop(step_id, None)
        self._checked.discard(step_id)
        return result

    async def run(self, step_id: str, *, emit: EventSink | None = None, trace_id: str | None = None) -> OperationResult:
        """Check, then execute only if the check found the step not done."""
        trace_id = trace_id or new_trace_id()
        result = await self.check(step_id, emit=emit, trace_id=trace_id)
        if result.status not in _EXECUTABLE:
            return result
        return await self.execute(step_id, check_data=result.vars, emit=emit, trace_id=trace_id)

    async def drive(self, *, execute: bool = False, max_passes: int = 50) -> dict[str, EffectiveStatus]:
        """Check every unblocked, unchecked step until nothing changes.

        Independent steps are checked concurrently; a consumer only becomes
        eligible once its producer has written what it requires. With
        execute=True, steps found not done are executed as well.
        """
        for _ in range(max_passes):
            candidates = [step_id for step_id in self.definition.topological_order() if self.needs_check(step_id)]
            if not candidates:
                break
            logger.debug("Driving %s", ", ".join(candidates))
            await asyncio.gather(*(self._drive_one(step_id, execute) for step_id in candidates))
        else:
            logger.warning("Stopped driving after %d passes without settling", max_passes)
        return self.effective_statuses()

    async def _drive_one(self, step_id: str, execute: bool) -> None:
        result = await self.check(step_id)
        if execute and result.status in _EXECUTABLE:
            await self.execute(step_id, check_data=result.vars)

    # --- Streaming ---

    async def stream(self, step_id: str, action: str = "run") -> AsyncIterator[BaseStreamEvent]:
        """Run an action and yield its events in order.

        The sequence always ends with a `complete` event, including when the
        step is unknown, busy or blocked, or the operation raised.
        Abandoning the iterator does not cancel the in-flight operation.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        operations: dict[str, Callable[..., Awaitable[OperationResult]]] = {
            "check": self.check,
            "run": self.run,
            "undo": self.undo,
        }
        trace_id = new_trace_id()
        queue: asyncio.Queue[BaseStreamEvent | None] = asyncio.Queue()

        async def worker() -> None:
            result: OperationResult | None = None
            error: str | None = None
            try:
                result = await operations[action](step_id, emit=queue.put_nowait, trace_id=trace_id)
            except Exception as e:
                if not isinstance(e, SsoflowError):
                    logger.exception("Streaming %s of %s failed", action, step_id)
                error = error_message(e, type(e).__name__)
                queue.put_nowait(StateEvent(step_id=step_id, trace_id=trace_id, state={"error": error}))
            finally:
                queue.put_nowait(self._complete_event(step_id, trace_id, result, error))
                queue.put_nowait(None)

        task = asyncio.create_task(worker())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        while True:
            event = await queue.get()
            if event is None:
                break
            yield event

    def _complete_event(
        self,
        step_id: str,
        trace_id: str,
        result: OperationResult | None,
        error: str | None,
    ) -> CompleteEvent:
        if step_id in self.states:
            state = self.states[step_id].model_copy(deep=True)
        else:
            state = StepState(status=StepStatus.FAILED)
        if result is not None and result.status == StepStatus.BLOCKED:
            state.status = StepStatus.BLOCKED
            state.block_reason = result.block_reason
        if error is not None:
            state.error = error
        return CompleteEvent(
            step_id=step_id,
            trace_id=trace_id,
            state=state,
            vars=dict(result.vars) if result else {},
            cleared=list(result.cleared) if result else [],
        )
