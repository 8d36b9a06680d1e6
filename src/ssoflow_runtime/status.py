"""Effective status derivation.

Pure functions over (stored status, variable snapshot, step graph). Blocking
is overlaid on top of whatever status was last stored, so availability
changes show up immediately without re-running remote checks.
"""

from collections.abc import Mapping
from typing import Any, NamedTuple

from ssoflow_runtime.exceptions import describe_missing
from ssoflow_runtime.models import StepStatus
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.step import Step


class EffectiveStatus(NamedTuple):
    """Derived status of a step and, when blocked, why."""

    status: StepStatus
    block_reason: str | None = None

    @property
    def blocked(self) -> bool:
        return self.status == StepStatus.BLOCKED


def is_set(variables: Mapping[str, Any], name: str) -> bool:
    """False and empty strings count as unset for blocking."""
    return bool(variables.get(name))


def missing_variables(step: Step, variables: Mapping[str, Any]) -> list[str]:
    """Required variables that are unset, in requires order."""
    return [name for name in step.requires if not is_set(variables, name)]


def compute_effective_status(
    step: Step,
    stored: StepStatus | None,
    variables: Mapping[str, Any],
    definition: WorkflowDefinition,
) -> EffectiveStatus:
    """Derive a step's effective status.

    A step is blocked iff a required variable is unset or falsy; the reason names
    the first missing variable and its producer. Otherwise the stored
    status wins, defaulting to ready.
    """
    missing = missing_variables(step, variables)
    if missing:
        name = missing[0]
        return EffectiveStatus(StepStatus.BLOCKED, describe_missing(name, definition.producer_of(name)))
    return EffectiveStatus(stored or StepStatus.READY)


def compute_all(
    definition: WorkflowDefinition,
    stored: Mapping[str, StepStatus],
    variables: Mapping[str, Any],
) -> dict[str, EffectiveStatus]:
    """Effective status of every step, in declaration order."""
    return {
        step.id: compute_effective_status(step, stored.get(step.id), variables, definition)
        for step in definition
    }


__all__ = [
    "EffectiveStatus",
    "compute_effective_status",
    "compute_all",
    "missing_variables",
    "is_set",
]
