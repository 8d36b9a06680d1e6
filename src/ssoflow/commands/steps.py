"""Steps and vars command implementations."""

from pathlib import Path

from ssoflow.commands.status import load_snapshot
from ssoflow.display import print_step_list, print_variable_catalog
from ssoflow_runtime.steps import build_federation_workflow


def steps_command() -> None:
    """List the federation steps in dependency order."""
    print_step_list(build_federation_workflow())


def vars_command(state_file: Path | None = None, vars_file: Path | None = None) -> None:
    """Show the variable catalog, with values from a saved state if given."""
    definition = build_federation_workflow()
    values, _ = load_snapshot(definition, state_file, vars_file)
    print_variable_catalog(definition, values)
