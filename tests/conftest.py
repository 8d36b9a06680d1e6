"""Shared pytest fixtures for ssoflow tests.

Provides settings with test credentials, the federation workflow
definition and a factory for step runners backed by httpx.MockTransport.
"""

from collections.abc import Callable

import httpx
import pytest
from tenacity import wait_none

from ssoflow_runtime.engine import StepRunner
from ssoflow_runtime.env import SsoflowSettings, clear_settings_cache
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.steps import build_federation_workflow

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> None:
    """Settings are cached per process; tests must not see each other's."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> SsoflowSettings:
    """Settings with every OAuth credential filled in."""
    return SsoflowSettings(
        _env_file=None,
        auth_secret="test-auth-secret",
        google_oauth_client_id="google-client",
        google_oauth_client_secret="google-secret",
        microsoft_oauth_client_id="ms-client",
        microsoft_oauth_client_secret="ms-secret",
        microsoft_tenant="contoso.com",
        base_url="http://testserver",
    )


@pytest.fixture
def definition() -> WorkflowDefinition:
    """The federation workflow definition."""
    return build_federation_workflow()


@pytest.fixture
def make_runner(definition: WorkflowDefinition) -> Callable[[Handler], StepRunner]:
    """Factory for StepRunners whose HTTP calls go to a handler function.

    Retries do not sleep.
    """

    def factory(handler: Handler) -> StepRunner:
        return StepRunner(
            definition,
            transport=httpx.MockTransport(handler),
            max_retries=2,
            retry_wait=wait_none(),
        )

    return factory
