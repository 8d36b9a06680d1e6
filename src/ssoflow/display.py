"""Rich display utilities for the ssoflow CLI."""

from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ssoflow_runtime.models import StepStatus
from ssoflow_runtime.redact import redact_vars
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.status import EffectiveStatus
from ssoflow_runtime.variables import sensitive_names

console = Console()

STATUS_STYLES = {
    StepStatus.COMPLETE: "green",
    StepStatus.READY: "yellow",
    StepStatus.STALE: "yellow",
    StepStatus.PENDING: "blue",
    StepStatus.BLOCKED: "red",
    StepStatus.FAILED: "bold red",
}


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]✓[/] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]✗[/] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]⚠[/] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[bold blue]ℹ[/] {message}")


def _names(names: tuple[str, ...]) -> str:
    return "\n".join(names) if names else "[dim]-[/]"


def print_step_list(definition: WorkflowDefinition) -> None:
    """Print a table of steps in dependency order."""
    table = Table(title="Federation steps")
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Requires")
    table.add_column("Provides")

    for i, step_id in enumerate(definition.topological_order(), 1):
        step = definition.get(step_id)
        table.add_row(str(i), step.id, step.title, _names(step.requires), _names(step.provides))

    console.print(table)


def print_status_table(
    definition: WorkflowDefinition,
    statuses: Mapping[str, EffectiveStatus],
    summaries: Mapping[str, str | None] | None = None,
) -> None:
    """Print the effective status of every step."""
    summaries = summaries or {}
    table = Table(title="Workflow status")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Details", style="dim")

    for step_id in definition.topological_order():
        effective = statuses[step_id]
        style = STATUS_STYLES.get(effective.status, "")
        details = effective.block_reason or summaries.get(step_id) or ""
        label = effective.status.value
        if style:
            label = f"[{style}]{label}[/]"
        table.add_row(step_id, label, escape(details))

    console.print(table)

    complete = sum(1 for s in statuses.values() if s.status == StepStatus.COMPLETE)
    console.print(f"[dim]{complete}/{len(statuses)} steps complete[/]")


def print_variable_catalog(definition: WorkflowDefinition, values: Mapping[str, Any] | None = None) -> None:
    """Print the variable catalog, hiding values of sensitive variables."""
    specs = definition.variables
    shown = redact_vars(dict(values or {}), sensitive_names(specs.values()))

    table = Table(title="Variables")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Producer")
    table.add_column("Value")
    table.add_column("Flags", style="dim")

    for name, spec in specs.items():
        flags = [
            flag
            for flag, enabled in (
                ("configurable", spec.configurable),
                ("sensitive", spec.sensitive),
                ("ephemeral", spec.ephemeral),
            )
            if enabled
        ]
        value = shown.get(name, spec.default)
        table.add_row(
            name,
            spec.category.value,
            spec.producer or "[dim]user[/]",
            "[dim]-[/]" if value is None else escape(str(value)),
            ", ".join(flags),
        )

    console.print(table)
