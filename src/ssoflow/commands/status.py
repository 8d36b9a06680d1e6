"""Status command implementation."""

from pathlib import Path
from typing import Any

import yaml

from ssoflow.display import console, print_error, print_status_table, print_warning
from ssoflow_runtime.models import StepState
from ssoflow_runtime.persistence import FileStateStore
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.status import compute_all
from ssoflow_runtime.steps import build_federation_workflow
from ssoflow_runtime.variables import Var, default_values


def load_overrides(path: Path) -> dict[str, Any]:
    """Read variable overrides from a YAML mapping file.

    Raises:
        ValueError: If the file is not valid YAML or not a mapping
    """
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of variable names to values")
    return {str(name): value for name, value in data.items()}


def load_snapshot(
    definition: WorkflowDefinition,
    state_file: Path | None,
    vars_file: Path | None,
) -> tuple[dict[str, Any], dict[str, StepState]]:
    """Variables and step states from defaults, a saved state and overrides.

    Unknown variable names in the overrides file are ignored with a warning.
    """
    values = default_values(definition.variables.values())
    states: dict[str, StepState] = {}

    if state_file is not None:
        if not state_file.exists():
            print_warning(f"State file not found: {state_file}")
        else:
            persisted = FileStateStore(state_file).load()
            if persisted is None:
                print_warning(f"Ignoring unreadable state file: {state_file}")
            else:
                values.update(persisted.values())
                states = persisted.step_states()

    if vars_file is not None:
        try:
            overrides = load_overrides(vars_file)
        except (OSError, ValueError) as e:
            print_error(str(e))
            raise SystemExit(1) from None
        for name, value in overrides.items():
            if name not in definition.variables:
                print_warning(f"Unknown variable ignored: {name}")
                continue
            values[name] = value

    return values, states


def status_command(state_file: Path | None, vars_file: Path | None = None) -> None:
    """Print the effective status of each step for a saved state."""
    definition = build_federation_workflow()
    values, states = load_snapshot(definition, state_file, vars_file)

    stored = {step_id: state.status for step_id, state in states.items()}
    statuses = compute_all(definition, stored, values)
    summaries = {step_id: state.error or state.summary for step_id, state in states.items()}

    print_status_table(definition, statuses, summaries)
    if not any(values.get(name) for name in (Var.GOOGLE_ACCESS_TOKEN, Var.MS_GRAPH_TOKEN)):
        console.print()
        console.print("[dim]No provider tokens in this snapshot; sign in through 'ssoflow serve'.[/]")
