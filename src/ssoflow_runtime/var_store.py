"""Variable store.

Typed key/value registry of workflow state. Reads go through `get` and
`require`; writes go through `set`, which notifies channel subscribers of
exactly the keys whose value changed. A value of None means unset.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from typing import Any

from ssoflow_runtime.drivers.channel import KeyedChannel, Subscription
from ssoflow_runtime.exceptions import MissingVariable, SsoflowError
from ssoflow_runtime.protocols.channel import ChangeHandler
from ssoflow_runtime.registry import WorkflowDefinition

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class VariableView(Mapping[str, Any]):
    """Read-only view over a set of variable values.

    Operation contexts receive one of these as a snapshot taken at
    invocation time.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        definition: WorkflowDefinition | None = None,
    ) -> None:
        self._values: dict[str, Any] = {k: v for k, v in (values or {}).items() if v is not None}
        self._definition = definition

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        value = self._values.get(name)
        return default if value is None else value

    def has(self, name: str) -> bool:
        return self._values.get(name) is not None

    def require(self, name: str) -> Any:
        """Get a variable, raising if it is unset.

        Raises:
            MissingVariable: Naming the variable and its producer, if known
        """
        value = self._values.get(name)
        if value is None:
            producer = self._definition.producer_of(name) if self._definition else None
            raise MissingVariable(name, producer)
        return value

    def build(self, template: str) -> str:
        """Substitute {name} placeholders with variable values.

        Raises:
            MissingVariable: If a placeholder names an unset variable
        """
        return _PLACEHOLDER.sub(lambda match: str(self.require(match.group(1))), template)

    def snapshot(self, overrides: Mapping[str, Any] | None = None) -> "VariableView":
        """Copy of the current values, optionally overlaid."""
        values = dict(self._values)
        values.update(overrides or {})
        return VariableView(values, self._definition)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


class VariableStore(VariableView):
    """Mutable variable registry with change notification.

    Writes made on behalf of a step (`source=step_id`) are tracked so that
    user edits to configurable variables are refused once their producer
    has written them.
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        definition: WorkflowDefinition | None = None,
        channel: KeyedChannel | None = None,
    ) -> None:
        super().__init__(values, definition)
        self._channel = channel or KeyedChannel()
        self._produced: set[str] = set()

    @property
    def channel(self) -> KeyedChannel:
        return self._channel

    def set(self, partial: Mapping[str, Any], source: str | None = None) -> set[str]:
        """Merge values; None clears a key.

        Returns:
            The keys whose value actually changed
        """
        changes: dict[str, Any] = {}
        for name, value in partial.items():
            if value is None:
                if name not in self._values:
                    continue
                del self._values[name]
                self._produced.discard(name)
            else:
                if source is not None and self._is_producer(name, source):
                    self._produced.add(name)
                if self._values.get(name) == value:
                    continue
                self._values[name] = value
            changes[name] = value

        if changes:
            logger.debug("Variables changed: %s", ", ".join(sorted(changes)))
            self._channel.publish(changes)
        return set(changes)

    def set_user(self, name: str, value: Any) -> set[str]:
        """Apply a direct user edit.

        Raises:
            SsoflowError: If the variable is not configurable or its producer
                has already written it
        """
        if self._definition is not None:
            spec = self._definition.variable(name)
            if not spec.configurable:
                raise SsoflowError(f"Variable {name} is not configurable")
        if name in self._produced:
            raise SsoflowError(f"Variable {name} was written by its producing step")
        return self.set({name: value})

    def clear(self, names: list[str] | tuple[str, ...]) -> set[str]:
        return self.set({name: None for name in names})

    def subscribe(self, name: str, handler: ChangeHandler) -> Subscription:
        """Subscribe to changes of one variable. Returns an unsubscribe callable."""
        return self._channel.subscribe(name, handler)

    def subscribe_all(self, handler: ChangeHandler) -> Subscription:
        return self._channel.subscribe_all(handler)

    def _is_producer(self, name: str, source: str) -> bool:
        if self._definition is None:
            return True
        return self._definition.producer_of(name) == source
