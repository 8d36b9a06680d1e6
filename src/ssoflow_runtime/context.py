"""Operation contexts handed to step check/execute/undo functions.

A context carries the variable snapshot, one API client per provider, a
structured log callback and the outcome callbacks for its phase. Every
invocation must report exactly one outcome; reporting a second one raises.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ssoflow_runtime.exceptions import SsoflowError
from ssoflow_runtime.http import ApiClient
from ssoflow_runtime.models import LogLevel, StepLogEntry, StepPhase
from ssoflow_runtime.var_store import VariableView

LogCallback = Callable[[StepLogEntry], None]


class OutcomeKind:
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    STALE = "stale"
    CHECK_FAILED = "check_failed"
    PENDING = "pending"
    REVERTED = "reverted"
    FAILED = "failed"


@dataclass
class Outcome:
    """What an operation reported through its callbacks."""

    kind: str
    message: str | None = None
    vars: dict[str, Any] = field(default_factory=dict)
    detail: Any = None


class StepContext:
    """Shared part of all operation contexts."""

    phase: StepPhase

    def __init__(
        self,
        step_id: str,
        variables: VariableView,
        google: ApiClient,
        microsoft: ApiClient,
        on_log: LogCallback,
        trace_id: str,
    ) -> None:
        self.step_id = step_id
        self.vars = variables
        self.google = google
        self.microsoft = microsoft
        self.trace_id = trace_id
        self._on_log = on_log
        self.outcome: Outcome | None = None

    def log(self, level: LogLevel | str, message: str, data: Any = None) -> None:
        """Append a structured line to the step log."""
        self._on_log(StepLogEntry(level=LogLevel(level), message=message, data=data))

    def _report(
        self,
        kind: str,
        message: str | None = None,
        variables: Mapping[str, Any] | None = None,
        detail: Any = None,
    ) -> None:
        if self.outcome is not None:
            raise SsoflowError(
                f"Step {self.step_id} already reported {self.outcome.kind} during {self.phase.value}"
            )
        self.outcome = Outcome(kind=kind, message=message, vars=dict(variables or {}), detail=detail)


class CheckContext(StepContext):
    """Context for read-only reconciliation probes."""

    phase = StepPhase.CHECK

    def mark_complete(self, variables: Mapping[str, Any] | None = None) -> None:
        """Remote state already matches; supply the provided variables."""
        self._report(OutcomeKind.COMPLETE, variables=variables)

    def mark_incomplete(self, reason: str, variables: Mapping[str, Any] | None = None) -> None:
        """Confirmed not yet done; partial variables are kept."""
        self._report(OutcomeKind.INCOMPLETE, reason, variables)

    def mark_stale(self, reason: str, variables: Mapping[str, Any] | None = None) -> None:
        """Remote state exists but local knowledge of it is unusable."""
        self._report(OutcomeKind.STALE, reason, variables)

    def mark_check_failed(self, reason: str, detail: Any = None) -> None:
        """Remote state could not be determined."""
        self._report(OutcomeKind.CHECK_FAILED, reason, detail=detail)


class ExecuteContext(StepContext):
    """Context for mutating calls. `check_data` holds what check gathered."""

    phase = StepPhase.EXECUTE

    def __init__(self, *args: Any, check_data: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.check_data: dict[str, Any] = dict(check_data or {})

    def mark_complete(self, variables: Mapping[str, Any] | None = None) -> None:
        """Succeeded; must cover every provided variable."""
        self._report(OutcomeKind.COMPLETE, variables=variables)

    def mark_incomplete(self, reason: str) -> None:
        """Recoverable failure. The reason is surfaced verbatim."""
        self._report(OutcomeKind.FAILED, reason)

    def mark_pending(self, notes: str) -> None:
        """Accepted remotely but not finished (operation in flight, DNS propagation)."""
        self._report(OutcomeKind.PENDING, notes)


class UndoContext(StepContext):
    """Context for best-effort reversal."""

    phase = StepPhase.UNDO

    def mark_reverted(self) -> None:
        self._report(OutcomeKind.REVERTED)

    def mark_failed(self, reason: str) -> None:
        self._report(OutcomeKind.FAILED, reason)
