"""Tests for the step execution protocol."""

from typing import Any

import pytest

from ssoflow_runtime.engine import StepRunner
from ssoflow_runtime.events import BaseStreamEvent, LogEvent, PhaseEvent, StateEvent, VarsEvent
from ssoflow_runtime.models import LogLevel, StepState, StepStatus
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.step import define_step
from ssoflow_runtime.var_store import VariableStore
from ssoflow_runtime.variables import VariableSpec


async def _noop(ctx) -> None:
    pass


def make_definition(check=_noop, execute=_noop, undo=None, provides=("x",), variables=()) -> WorkflowDefinition:
    step = define_step("s", provides=provides, check=check, execute=execute, undo=undo)
    return WorkflowDefinition([step], variables)


class Harness:
    def __init__(self, definition: WorkflowDefinition, values: dict[str, Any] | None = None) -> None:
        self.definition = definition
        self.runner = StepRunner(definition)
        self.store = VariableStore(values, definition)
        self.state = StepState()
        self.events: list[BaseStreamEvent] = []
        self.step = definition.get("s")

    async def check(self):
        return await self.runner.check(self.step, self.store, self.state, trace_id="t", emit=self.events.append)

    async def execute(self, check_data=None):
        return await self.runner.execute(
            self.step, self.store, self.state, trace_id="t", check_data=check_data, emit=self.events.append
        )

    async def undo(self):
        return await self.runner.undo(self.step, self.store, self.state, trace_id="t", emit=self.events.append)


class TestCheck:
    @pytest.mark.asyncio
    async def test_complete_writes_provided_variables(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_complete({"x": "1"})

        h = Harness(make_definition(check=check))
        result = await h.check()

        assert result.status == StepStatus.COMPLETE
        assert result.vars == {"x": "1"}
        assert h.store.get("x") == "1"
        assert h.state.summary == "Step already complete"
        assert not h.state.is_checking

    @pytest.mark.asyncio
    async def test_incomplete_keeps_partial_variables(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_incomplete("Not there yet", {"x": "partial"})

        h = Harness(make_definition(check=check))
        result = await h.check()

        assert result.status == StepStatus.READY
        assert h.state.summary == "Not there yet"
        assert h.store.get("x") == "partial"

    @pytest.mark.asyncio
    async def test_undeclared_variables_dropped(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_complete({"x": "1", "y": "sneaky"})

        h = Harness(make_definition(check=check))
        result = await h.check()

        assert result.vars == {"x": "1"}
        assert not h.store.has("y")

    @pytest.mark.asyncio
    async def test_check_failed(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_check_failed("HTTP 503")

        h = Harness(make_definition(check=check))
        result = await h.check()

        assert result.status == StepStatus.FAILED
        assert h.state.error == "Check failed: HTTP 503"

    @pytest.mark.asyncio
    async def test_stale(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_stale("Password unknown")

        h = Harness(make_definition(check=check))
        assert (await h.check()).status == StepStatus.STALE

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_with_raw_message(self) -> None:
        async def check(ctx) -> None:
            raise RuntimeError("boom")

        h = Harness(make_definition(check=check))
        result = await h.check()

        assert result.status == StepStatus.FAILED
        assert h.state.error == "boom"
        assert any(entry.level == LogLevel.ERROR for entry in h.state.logs)

    @pytest.mark.asyncio
    async def test_no_outcome_is_failed(self) -> None:
        h = Harness(make_definition())
        await h.check()
        assert h.state.status == StepStatus.FAILED
        assert h.state.error == "Check finished without reporting an outcome"

    @pytest.mark.asyncio
    async def test_second_outcome_rejected(self) -> None:
        async def check(ctx) -> None:
            ctx.mark_complete()
            ctx.mark_incomplete("again")

        h = Harness(make_definition(check=check))
        await h.check()

        assert h.state.status == StepStatus.FAILED
        assert "already reported" in h.state.error

    @pytest.mark.asyncio
    async def test_events(self) -> None:
        async def check(ctx) -> None:
            ctx.log(LogLevel.INFO, "looking", {"accessToken": "abc"})
            ctx.mark_complete({"x": "1"})

        h = Harness(make_definition(check=check))
        await h.check()

        assert all(event.trace_id == "t" for event in h.events)
        phases = [(e.phase.value, e.status) for e in h.events if isinstance(e, PhaseEvent)]
        assert phases == [("check", "start"), ("check", "end")]
        assert any(isinstance(e, StateEvent) and e.state.get("is_checking") is True for e in h.events)
        assert [e.vars for e in h.events if isinstance(e, VarsEvent)] == [{"x": "1"}]
        logged = [e.entry for e in h.events if isinstance(e, LogEvent) and e.entry.message == "looking"]
        assert logged[0].data == {"accessToken": "[REDACTED]"}

    @pytest.mark.asyncio
    async def test_sensitive_values_redacted_in_logs(self) -> None:
        async def check(ctx) -> None:
            ctx.log(LogLevel.INFO, "created", {"note": "hunter2"})
            ctx.mark_complete({"x": "1"})

        definition = make_definition(check=check, variables=[VariableSpec(name="pw", sensitive=True)])
        h = Harness(definition, {"pw": "hunter2"})
        await h.check()

        entry = next(entry for entry in h.state.logs if entry.message == "created")
        assert entry.data == {"note": "[REDACTED]"}


class TestExecute:
    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        async def execute(ctx) -> None:
            ctx.mark_complete({"x": "made"})

        h = Harness(make_definition(execute=execute))
        result = await h.execute()

        assert result.status == StepStatus.COMPLETE
        assert h.state.summary == "Succeeded"
        assert h.store.get("x") == "made"
        assert not h.state.is_executing

    @pytest.mark.asyncio
    async def test_provided_values_may_come_from_check_data(self) -> None:
        seen: dict[str, Any] = {}

        async def execute(ctx) -> None:
            seen["x"] = ctx.vars.get("x")
            seen["check_data"] = ctx.check_data
            ctx.mark_complete()

        h = Harness(make_definition(execute=execute))
        result = await h.execute(check_data={"x": "found"})

        assert result.status == StepStatus.COMPLETE
        assert seen == {"x": "found", "check_data": {"x": "found"}}
        assert h.store.get("x") == "found"

    @pytest.mark.asyncio
    async def test_missing_provided_variable_fails(self) -> None:
        async def execute(ctx) -> None:
            ctx.mark_complete()

        h = Harness(make_definition(execute=execute))
        result = await h.execute()

        assert result.status == StepStatus.FAILED
        assert h.state.error == "Execute finished without providing x"

    @pytest.mark.asyncio
    async def test_incomplete_is_failed_with_verbatim_reason(self) -> None:
        async def execute(ctx) -> None:
            ctx.mark_incomplete("SAML profile missing. Run it first.")

        h = Harness(make_definition(execute=execute))
        result = await h.execute()

        assert result.status == StepStatus.FAILED
        assert h.state.error == "SAML profile missing. Run it first."

    @pytest.mark.asyncio
    async def test_pending(self) -> None:
        async def execute(ctx) -> None:
            ctx.mark_pending("Add TXT record")

        h = Harness(make_definition(execute=execute))
        result = await h.execute()

        assert result.status == StepStatus.PENDING
        assert h.state.notes == "Add TXT record"


class TestUndo:
    @pytest.mark.asyncio
    async def test_reverted_clears_provided_variables(self) -> None:
        async def undo(ctx) -> None:
            ctx.mark_reverted()

        h = Harness(make_definition(undo=undo), {"x": "1"})
        h.state.status = StepStatus.COMPLETE
        result = await h.undo()

        assert result.status == StepStatus.READY
        assert result.cleared == ("x",)
        assert h.state.summary == "Reverted"
        assert not h.store.has("x")

    @pytest.mark.asyncio
    async def test_failure_keeps_variables(self) -> None:
        async def undo(ctx) -> None:
            ctx.mark_failed("Permission denied")

        h = Harness(make_definition(undo=undo), {"x": "1"})
        result = await h.undo()

        assert result.status == StepStatus.FAILED
        assert h.state.error == "Permission denied"
        assert h.store.get("x") == "1"

    @pytest.mark.asyncio
    async def test_step_without_undo_reverts(self) -> None:
        h = Harness(make_definition(), {"x": "1"})
        result = await h.undo()
        assert result.status == StepStatus.READY
        assert not h.store.has("x")
