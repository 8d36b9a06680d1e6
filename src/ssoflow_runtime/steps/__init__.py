"""The Google Workspace / Microsoft Entra federation workflow.

Steps are listed in the order an operator works through them. Execution
order is derived from variable dependencies, not from this list.
"""

from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.step import Step
from ssoflow_runtime.steps import (
    assign_users_to_sso,
    complete_google_sso_setup,
    configure_google_saml_profile,
    configure_microsoft_sso,
    create_admin_role,
    create_automation_ou,
    create_microsoft_apps,
    create_service_user,
    setup_microsoft_claims_policy,
    setup_microsoft_provisioning,
    verify_primary_domain,
)
from ssoflow_runtime.steps.password import generate_password
from ssoflow_runtime.variables import FEDERATION_VARIABLES

ALL_STEPS: tuple[Step, ...] = (
    verify_primary_domain.STEP,
    create_automation_ou.STEP,
    create_service_user.STEP,
    create_admin_role.STEP,
    configure_google_saml_profile.STEP,
    create_microsoft_apps.STEP,
    setup_microsoft_provisioning.STEP,
    configure_microsoft_sso.STEP,
    setup_microsoft_claims_policy.STEP,
    complete_google_sso_setup.STEP,
    assign_users_to_sso.STEP,
)


def build_federation_workflow() -> WorkflowDefinition:
    """Validated definition of the federation workflow."""
    return WorkflowDefinition(ALL_STEPS, FEDERATION_VARIABLES)


__all__ = ["ALL_STEPS", "build_federation_workflow", "generate_password"]
