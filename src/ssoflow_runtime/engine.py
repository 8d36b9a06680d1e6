"""Execution protocol.

`StepRunner` invokes one operation of one step: it builds the phase
context, calls the step function, converts the reported outcome into a
status transition plus variable writes, and emits stream events along the
way. It never retries; unexpected exceptions become Failed with the raw
message attached.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, NamedTuple

import httpx
from tenacity.wait import wait_base

from ssoflow_runtime.context import (
    CheckContext,
    ExecuteContext,
    Outcome,
    OutcomeKind,
    StepContext,
    UndoContext,
)
from ssoflow_runtime.events import (
    BaseStreamEvent,
    LogEvent,
    LroEvent,
    PhaseEvent,
    StateEvent,
    VarsEvent,
)
from ssoflow_runtime.exceptions import CheckFailed, ExecuteFailed, UndoFailed, error_message
from ssoflow_runtime.http import GOOGLE, MICROSOFT, ApiClient
from ssoflow_runtime.models import LogLevel, LroInfo, StepLogEntry, StepPhase, StepState, StepStatus
from ssoflow_runtime.redact import redact
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.step import Step
from ssoflow_runtime.var_store import VariableStore
from ssoflow_runtime.variables import Var

logger = logging.getLogger(__name__)

EventSink = Callable[[BaseStreamEvent], None]

_LOG_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

SUMMARY_ALREADY_COMPLETE = "Step already complete"
SUMMARY_SUCCEEDED = "Succeeded"
SUMMARY_REVERTED = "Reverted"


class OperationResult(NamedTuple):
    """Outcome of one invocation as seen by the caller."""

    step_id: str
    phase: StepPhase | None
    status: StepStatus
    outcome: str
    vars: dict[str, Any]
    cleared: tuple[str, ...] = ()
    block_reason: str | None = None
    error: str | None = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


class _Invocation:
    """Bookkeeping for a single operation: state patches, logs, events."""

    def __init__(
        self,
        runner: StepRunner,
        step: Step,
        store: VariableStore,
        state: StepState,
        trace_id: str,
        emit: EventSink | None,
    ) -> None:
        self.runner = runner
        self.step = step
        self.store = store
        self.state = state
        self.trace_id = trace_id
        self._emit = emit
        self._lro_seen = False
        sensitive = [store.get(name) for name in runner.sensitive_variables]
        self._sensitive_values = [value for value in sensitive if isinstance(value, str)]

    def emit(self, event: BaseStreamEvent) -> None:
        if self._emit is not None:
            self._emit(event)

    def push_state(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self.state, key, value)
        self.emit(
            StateEvent(
                step_id=self.step.id,
                trace_id=self.trace_id,
                state={key: _jsonable(value) for key, value in changes.items()},
            )
        )

    def phase(self, phase: StepPhase, status: str) -> None:
        self.add_log(
            StepLogEntry(
                level=LogLevel.DEBUG,
                message=f"Phase {phase.value} {status}",
                data={"phase": phase.value, "status": status, "stepId": self.step.id},
            )
        )
        self.emit(PhaseEvent(step_id=self.step.id, trace_id=self.trace_id, phase=phase, status=status))

    def add_log(self, entry: StepLogEntry) -> None:
        if entry.data is not None:
            entry = entry.model_copy(update={"data": redact(entry.data, self._sensitive_values)})
        self.state.logs.append(entry)
        logger.log(_LOG_LEVELS[entry.level], "[%s] %s", self.step.id, entry.message)
        self.emit(LogEvent(step_id=self.step.id, trace_id=self.trace_id, entry=entry))

    def record_lro(self, lro: LroInfo) -> None:
        if self._lro_seen:
            return
        self._lro_seen = True
        self.state.lro = lro
        self.emit(LroEvent(step_id=self.step.id, trace_id=self.trace_id, lro=lro))

    def write(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Write variables this step owns; anything else is dropped with a warning."""
        allowed = self.runner.definition.writable_by(self.step.id)
        accepted = {name: value for name, value in values.items() if name in allowed}
        dropped = sorted(set(values) - set(accepted))
        if dropped:
            logger.warning("Step %s reported variables it does not provide: %s", self.step.id, dropped)
        if accepted:
            self.store.set(accepted, source=self.step.id)
            self.emit(VarsEvent(step_id=self.step.id, trace_id=self.trace_id, vars=accepted))
        return accepted

    def clients(self) -> tuple[ApiClient, ApiClient]:
        options = self.runner.client_options()
        google = ApiClient(
            GOOGLE,
            self.store.get(Var.GOOGLE_ACCESS_TOKEN),
            on_log=self.add_log,
            on_lro=self.record_lro,
            **options,
        )
        microsoft = ApiClient(
            MICROSOFT,
            self.store.get(Var.MS_GRAPH_TOKEN),
            on_log=self.add_log,
            on_lro=self.record_lro,
            **options,
        )
        return google, microsoft

    async def call(self, fn: Callable[[Any], Any], ctx: StepContext) -> str | None:
        """Await a step function. Returns the error message if it raised."""
        try:
            await fn(ctx)
        except Exception as e:
            message = error_message(e, type(e).__name__)
            logger.warning("Step %s %s raised: %s", self.step.id, ctx.phase.value, message, exc_info=True)
            self.add_log(StepLogEntry(level=LogLevel.ERROR, message=message, data={"error": type(e).__name__}))
            return message
        finally:
            await ctx.google.aclose()
            await ctx.microsoft.aclose()
        return None

    def result(
        self,
        phase: StepPhase,
        outcome: str,
        written: dict[str, Any],
        cleared: list[str] | None = None,
    ) -> OperationResult:
        return OperationResult(
            step_id=self.step.id,
            phase=phase,
            status=self.state.status,
            outcome=outcome,
            vars=written,
            cleared=tuple(cleared or ()),
            error=self.state.error,
        )


class StepRunner:
    """Runs check, execute and undo operations for a workflow definition.

    HTTP behaviour (transport, timeout, retry policy for idempotent reads)
    is fixed per runner so tests can swap in an httpx.MockTransport.
    """

    def __init__(
        self,
        definition: WorkflowDefinition,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait: wait_base | None = None,
    ) -> None:
        self.definition = definition
        self._transport = transport
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_wait = retry_wait
        self.sensitive_variables = [name for name, spec in definition.variables.items() if spec.sensitive]

    def client_options(self) -> dict[str, Any]:
        return {
            "transport": self._transport,
            "timeout": self._timeout,
            "max_retries": self._max_retries,
            "retry_wait": self._retry_wait,
        }

    def _context(self, cls: type, inv: _Invocation, **kwargs: Any) -> Any:
        google, microsoft = inv.clients()
        return cls(
            inv.step.id,
            inv.store.snapshot(kwargs.pop("overrides", None)),
            google,
            microsoft,
            inv.add_log,
            inv.trace_id,
            **kwargs,
        )

    async def check(
        self,
        step: Step,
        store: VariableStore,
        state: StepState,
        *,
        trace_id: str,
        emit: EventSink | None = None,
    ) -> OperationResult:
        """Probe remote state; never mutates it."""
        inv = _Invocation(self, step, store, state, trace_id, emit)
        inv.phase(StepPhase.CHECK, "start")
        inv.push_state(is_checking=True, block_reason=None)
        written: dict[str, Any] = {}
        try:
            ctx: CheckContext = self._context(CheckContext, inv)
            raised = await inv.call(step.check, ctx)
            outcome = ctx.outcome
            if raised is not None:
                inv.push_state(status=StepStatus.FAILED, error=raised)
                kind = OutcomeKind.FAILED
            elif outcome is None:
                inv.push_state(status=StepStatus.FAILED, error="Check finished without reporting an outcome")
                kind = OutcomeKind.FAILED
            else:
                kind = outcome.kind
                written = self._apply_check(inv, outcome)
        finally:
            inv.push_state(is_checking=False)
            inv.phase(StepPhase.CHECK, "end")
        return inv.result(StepPhase.CHECK, kind, written)

    def _apply_check(self, inv: _Invocation, outcome: Outcome) -> dict[str, Any]:
        if outcome.kind == OutcomeKind.CHECK_FAILED:
            inv.push_state(status=StepStatus.FAILED, error=CheckFailed(outcome.message or "unknown").message)
            return {}

        written = inv.write(outcome.vars)
        if outcome.kind == OutcomeKind.COMPLETE:
            missing = [name for name in inv.step.provides if not inv.store.has(name)]
            if missing:
                logger.warning("Step %s is complete but %s unset", inv.step.id, ", ".join(missing))
            inv.push_state(status=StepStatus.COMPLETE, summary=SUMMARY_ALREADY_COMPLETE, error=None, notes=None)
        elif outcome.kind == OutcomeKind.STALE:
            inv.push_state(status=StepStatus.STALE, summary=outcome.message, error=None)
        else:
            inv.push_state(status=StepStatus.READY, summary=outcome.message, error=None)
        return written

    async def execute(
        self,
        step: Step,
        store: VariableStore,
        state: StepState,
        *,
        trace_id: str,
        check_data: Mapping[str, Any] | None = None,
        emit: EventSink | None = None,
    ) -> OperationResult:
        """Perform the mutating calls. Never retried automatically."""
        inv = _Invocation(self, step, store, state, trace_id, emit)
        inv.phase(StepPhase.EXECUTE, "start")
        inv.push_state(is_executing=True, status=StepStatus.EXECUTING, error=None, notes=None)
        written: dict[str, Any] = {}
        kind = OutcomeKind.FAILED
        try:
            ctx: ExecuteContext = self._context(
                ExecuteContext,
                inv,
                overrides=dict(check_data or {}),
                check_data=check_data,
            )
            raised = await inv.call(step.execute, ctx)
            outcome = ctx.outcome
            if raised is not None:
                inv.push_state(status=StepStatus.FAILED, error=raised)
            elif outcome is None:
                inv.push_state(status=StepStatus.FAILED, error="Execute finished without reporting an outcome")
            else:
                written = self._apply_execute(inv, ctx, outcome)
                kind = OutcomeKind.FAILED if inv.state.status == StepStatus.FAILED else outcome.kind
        finally:
            inv.push_state(is_executing=False)
            inv.phase(StepPhase.EXECUTE, "end")
        return inv.result(StepPhase.EXECUTE, kind, written)

    def _apply_execute(self, inv: _Invocation, ctx: ExecuteContext, outcome: Outcome) -> dict[str, Any]:
        if outcome.kind == OutcomeKind.PENDING:
            inv.push_state(status=StepStatus.PENDING, notes=outcome.message)
            return {}
        if outcome.kind == OutcomeKind.FAILED:
            inv.push_state(status=StepStatus.FAILED, error=ExecuteFailed(outcome.message or "Execute failed").message)
            return {}

        provided: dict[str, Any] = {}
        for name in inv.step.provides:
            value = outcome.vars.get(name)
            if value is None:
                value = ctx.check_data.get(name)
            if value is None:
                value = inv.store.get(name)
            provided[name] = value
        missing = [name for name, value in provided.items() if value is None]
        if missing:
            inv.push_state(
                status=StepStatus.FAILED,
                error=ExecuteFailed(f"Execute finished without providing {', '.join(missing)}").message,
            )
            return {}

        inv.write(provided)
        inv.push_state(status=StepStatus.COMPLETE, summary=SUMMARY_SUCCEEDED, error=None)
        return provided

    async def undo(
        self,
        step: Step,
        store: VariableStore,
        state: StepState,
        *,
        trace_id: str,
        emit: EventSink | None = None,
    ) -> OperationResult:
        """Best-effort reversal.

        Success clears every variable the step provided and resets to
        ready. Failure keeps them, since remote state may be unchanged.
        """
        inv = _Invocation(self, step, store, state, trace_id, emit)
        inv.phase(StepPhase.UNDO, "start")
        inv.push_state(is_undoing=True, status=StepStatus.UNDOING, error=None)
        cleared: list[str] = []
        kind = OutcomeKind.FAILED
        try:
            if step.undo is None:
                outcome: Outcome | None = Outcome(kind=OutcomeKind.REVERTED)
                raised = None
            else:
                ctx: UndoContext = self._context(UndoContext, inv)
                raised = await inv.call(step.undo, ctx)
                outcome = ctx.outcome

            if raised is not None:
                inv.push_state(status=StepStatus.FAILED, error=UndoFailed(raised).message)
            elif outcome is None:
                inv.push_state(status=StepStatus.FAILED, error="Undo finished without reporting an outcome")
            elif outcome.kind == OutcomeKind.REVERTED:
                kind = OutcomeKind.REVERTED
                owned = list(step.provides)
                owned += sorted(self.definition.writable_by(step.id) - set(step.provides))
                changed = store.clear(owned)
                cleared = [name for name in owned if name in changed]
                inv.push_state(status=StepStatus.READY, summary=SUMMARY_REVERTED, error=None, notes=None, lro=None)
            else:
                inv.push_state(status=StepStatus.FAILED, error=UndoFailed(outcome.message or "Undo failed").message)
        finally:
            inv.push_state(is_undoing=False)
            inv.phase(StepPhase.UNDO, "end")
        return inv.result(StepPhase.UNDO, kind, {}, cleared)
