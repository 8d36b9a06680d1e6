"""Immutable workflow definitions.

A `WorkflowDefinition` is built once at startup from an ordered list of
steps and a variable catalog, validated, and then passed to whoever needs
it. Nothing registers itself globally.
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from ssoflow_runtime.exceptions import InvalidWorkflowError, UnknownStepError
from ssoflow_runtime.step import Step
from ssoflow_runtime.variables import VariableSpec

logger = logging.getLogger(__name__)


class WorkflowDefinition:
    """Ordered steps plus variable metadata derived from the step graph.

    Validation rejects duplicate step ids, variables provided by more than
    one step, and requires/provides cycles.
    """

    def __init__(self, steps: Iterable[Step], variables: Iterable[VariableSpec] = ()) -> None:
        self._steps = tuple(steps)

        by_id: dict[str, Step] = {}
        for step in self._steps:
            if step.id in by_id:
                raise InvalidWorkflowError(f"Duplicate step id: {step.id}")
            by_id[step.id] = step
        self._by_id = MappingProxyType(by_id)

        producers: dict[str, str] = {}
        consumers: dict[str, set[str]] = {}
        for step in self._steps:
            for name in step.provides:
                if name in producers:
                    raise InvalidWorkflowError(
                        f"Variable {name} is provided by both {producers[name]} and {step.id}"
                    )
                producers[name] = step.id
            for name in step.requires:
                consumers.setdefault(name, set()).add(step.id)
        self._producers = MappingProxyType(producers)

        specs: dict[str, VariableSpec] = {}
        for spec in variables:
            specs[spec.name] = spec
        for name in list(producers) + list(consumers):
            specs.setdefault(name, VariableSpec(name=name))
        self._variables = MappingProxyType(
            {
                name: spec.model_copy(
                    update={
                        "producer": producers.get(name, spec.producer),
                        "consumers": frozenset(consumers.get(name, ())),
                    }
                )
                for name, spec in specs.items()
            }
        )

        self._order = self._sort()
        logger.debug("Workflow definition built with %d steps", len(self._steps))

    def _sort(self) -> tuple[str, ...]:
        """Topological order, stable with respect to declaration order."""
        remaining = {step.id: set(self.dependencies_of(step.id)) for step in self._steps}
        order: list[str] = []
        while remaining:
            ready = [step.id for step in self._steps if remaining.get(step.id) == set()]
            if not ready:
                raise InvalidWorkflowError(
                    f"Dependency cycle between steps: {', '.join(sorted(remaining))}"
                )
            for step_id in ready:
                order.append(step_id)
                del remaining[step_id]
                for deps in remaining.values():
                    deps.discard(step_id)
        return tuple(order)

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    @property
    def variables(self) -> Mapping[str, VariableSpec]:
        return self._variables

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._by_id

    def get(self, step_id: str) -> Step:
        """Look up a step by id.

        Raises:
            UnknownStepError: If no step has this id
        """
        try:
            return self._by_id[step_id]
        except KeyError:
            raise UnknownStepError(step_id) from None

    def variable(self, name: str) -> VariableSpec:
        """Metadata for a variable; unknown names get a bare spec."""
        return self._variables.get(name) or VariableSpec(name=name)

    def producer_of(self, name: str) -> str | None:
        spec = self._variables.get(name)
        return spec.producer if spec else None

    def consumers_of(self, name: str) -> frozenset[str]:
        spec = self._variables.get(name)
        return spec.consumers if spec else frozenset()

    def dependencies_of(self, step_id: str) -> list[str]:
        """Ids of the steps producing what step_id requires, in requires order."""
        step = self.get(step_id)
        deps: list[str] = []
        for name in step.requires:
            producer = self._producers.get(name)
            if producer and producer not in deps:
                deps.append(producer)
        return deps

    def writable_by(self, step_id: str) -> frozenset[str]:
        """Variables a step may write: its provides plus explicitly owned extras."""
        step = self.get(step_id)
        owned = {name for name, spec in self._variables.items() if spec.producer == step_id}
        return frozenset(step.provides) | owned

    def topological_order(self) -> tuple[str, ...]:
        return self._order
