"""Persisted client-side state.

Shape: {"vars": {name: str | None}, "status": {step_id: {status, summary?,
error?, notes?}}}. The core produces and consumes it but does not own the
storage. Anything failing validation is treated as absent, never partially
trusted. Ephemeral variables are stripped before writing.
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ssoflow_runtime.exceptions import StateCorrupt
from ssoflow_runtime.models import StepState, StepStatus
from ssoflow_runtime.registry import WorkflowDefinition

logger = logging.getLogger(__name__)


class PersistedStepStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: StepStatus
    summary: str | None = None
    error: str | None = None
    notes: str | None = None


class PersistedState(BaseModel):
    """Validated persisted workflow state."""

    model_config = ConfigDict(extra="ignore")

    vars: dict[str, str | bool | None] = Field(default_factory=dict)
    status: dict[str, PersistedStepStatus] = Field(default_factory=dict)

    def step_states(self) -> dict[str, StepState]:
        """Runtime states rebuilt from the stored status entries.

        Transient flags are never persisted, so a step saved mid-execution
        comes back with its last stored status and no in-flight marker.
        """
        return {
            step_id: StepState(
                status=entry.status,
                summary=entry.summary,
                error=entry.error,
                notes=entry.notes,
            )
            for step_id, entry in self.status.items()
        }

    def values(self) -> dict[str, Any]:
        return {name: value for name, value in self.vars.items() if value is not None}


def parse_state(raw: Any) -> PersistedState:
    """Validate raw persisted data.

    Args:
        raw: A JSON string or already-decoded mapping

    Raises:
        StateCorrupt: If the data is not valid JSON or fails the schema
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise StateCorrupt(f"invalid JSON: {e}") from e
    try:
        return PersistedState.model_validate(raw)
    except ValidationError as e:
        raise StateCorrupt(f"{e.error_count()} validation error(s)") from e


def load_state(raw: Any) -> PersistedState | None:
    """Parse persisted state, returning None when it is absent or corrupt."""
    if raw is None or raw == "":
        return None
    try:
        return parse_state(raw)
    except StateCorrupt as e:
        logger.warning("Ignoring persisted state: %s", e.message)
        return None


def dump_state(
    values: Mapping[str, Any],
    states: Mapping[str, StepState],
    definition: WorkflowDefinition | None = None,
) -> dict[str, Any]:
    """Serialize variables and step states, dropping ephemeral variables."""
    ephemeral = set()
    if definition is not None:
        ephemeral = {name for name, spec in definition.variables.items() if spec.ephemeral}
    persisted = PersistedState(
        vars={name: value for name, value in values.items() if name not in ephemeral},
        status={
            step_id: PersistedStepStatus(
                status=state.status,
                summary=state.summary,
                error=state.error,
                notes=state.notes,
            )
            for step_id, state in states.items()
        },
    )
    return persisted.model_dump(mode="json", exclude_none=True)


class FileStateStore:
    """Persists workflow state as a JSON file for the CLI."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> PersistedState | None:
        if not self.path.exists():
            return None
        return load_state(self.path.read_text())

    def save(
        self,
        values: Mapping[str, Any],
        states: Mapping[str, StepState],
        definition: WorkflowDefinition | None = None,
    ) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = dump_state(values, states, definition)
        self.path.write_text(json.dumps(data, indent=2))
