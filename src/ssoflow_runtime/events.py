"""Stream event models for step execution.

Every check/execute/undo invocation produces an ordered sequence of events
sharing one trace id. The `type` field is the discriminator clients switch
on; `state` events carry status transitions, the others carry log lines,
variable updates, phase boundaries and LRO hints. A `complete` event always
closes the sequence.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ssoflow_runtime.models import LroInfo, StepLogEntry, StepPhase, StepState


def new_trace_id() -> str:
    return uuid4().hex[:16]


class BaseStreamEvent(BaseModel):
    """Base event with common fields.

    Events are immutable facts about one step invocation.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    step_id: str
    trace_id: str


class PhaseEvent(BaseStreamEvent):
    """Emitted when an operation starts or ends."""

    type: Literal["phase"] = "phase"
    phase: StepPhase
    status: Literal["start", "end"]


class StateEvent(BaseStreamEvent):
    """Emitted on every status transition with the fields that changed."""

    type: Literal["state"] = "state"
    state: dict[str, Any] = Field(default_factory=dict)


class LogEvent(BaseStreamEvent):
    """Emitted for each structured log line, already redacted."""

    type: Literal["log"] = "log"
    entry: StepLogEntry


class VarsEvent(BaseStreamEvent):
    """Emitted when an outcome callback reports variable values."""

    type: Literal["vars"] = "vars"
    vars: dict[str, Any] = Field(default_factory=dict)


class LroEvent(BaseStreamEvent):
    """Emitted once per invocation when a long-running operation is seen."""

    type: Literal["lro"] = "lro"
    lro: LroInfo


class CompleteEvent(BaseStreamEvent):
    """Final event of an invocation: resulting state and variable updates."""

    type: Literal["complete"] = "complete"
    state: StepState
    vars: dict[str, Any] = Field(default_factory=dict)
    cleared: list[str] = Field(default_factory=list, description="Variables removed by undo")


StreamEvent = Annotated[
    PhaseEvent | StateEvent | LogEvent | VarsEvent | LroEvent | CompleteEvent,
    Field(discriminator="type"),
]


def encode_sse(event: BaseStreamEvent) -> str:
    """Format an event as a server-sent-events data frame."""
    return f"data: {event.model_dump_json()}\n\n"
