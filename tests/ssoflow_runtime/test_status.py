"""Tests for effective status computation."""

from ssoflow_runtime.models import StepStatus
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.status import compute_all, compute_effective_status, missing_variables


class TestEffectiveStatus:
    def test_blocked_names_first_missing_variable_and_producer(self, definition: WorkflowDefinition) -> None:
        step = definition.get("create-admin-role-and-assign-user")
        values = {"googleAccessToken": "t", "isDomainVerified": True}

        effective = compute_effective_status(step, StepStatus.COMPLETE, values, definition)

        assert effective.blocked
        assert effective.status == StepStatus.BLOCKED
        assert effective.block_reason == "Missing provisioningUserId (provided by create-service-user)"

    def test_blocked_wins_over_stored_status(self, definition: WorkflowDefinition) -> None:
        step = definition.get("create-automation-ou")
        effective = compute_effective_status(step, StepStatus.COMPLETE, {}, definition)
        assert effective.status == StepStatus.BLOCKED

    def test_stored_status_when_unblocked(self, definition: WorkflowDefinition) -> None:
        step = definition.get("verify-primary-domain")
        effective = compute_effective_status(step, StepStatus.COMPLETE, {"googleAccessToken": "t"}, definition)
        assert effective.status == StepStatus.COMPLETE
        assert effective.block_reason is None

    def test_defaults_to_ready(self, definition: WorkflowDefinition) -> None:
        step = definition.get("verify-primary-domain")
        assert compute_effective_status(step, None, {"googleAccessToken": "t"}, definition).status == StepStatus.READY

    def test_false_blocks_requirement(self, definition: WorkflowDefinition) -> None:
        step = definition.get("create-automation-ou")
        values = {
            "googleAccessToken": "t",
            "isDomainVerified": False,
            "automationOuName": "Automation",
            "automationOuPath": "/Automation",
        }

        assert missing_variables(step, values) == ["isDomainVerified"]
        effective = compute_effective_status(step, None, values, definition)
        assert effective.status == StepStatus.BLOCKED
        assert effective.block_reason == "Missing isDomainVerified (provided by verify-primary-domain)"

    def test_empty_string_blocks_requirement(self, definition: WorkflowDefinition) -> None:
        step = definition.get("verify-primary-domain")
        assert compute_effective_status(step, None, {"googleAccessToken": ""}, definition).blocked

    def test_compute_all_covers_every_step(self, definition: WorkflowDefinition) -> None:
        statuses = compute_all(definition, {}, {"googleAccessToken": "t"})
        assert len(statuses) == 11
        assert statuses["verify-primary-domain"].status == StepStatus.READY
        assert statuses["create-microsoft-apps"].block_reason == "Missing msGraphToken"
