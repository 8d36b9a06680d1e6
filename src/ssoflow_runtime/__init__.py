"""ssoflow Runtime - Core library for identity federation workflows.

This module provides the step engine, the OAuth token lifecycle and the
Google Workspace / Microsoft Entra federation steps.

Usage:
    from ssoflow_runtime import WorkflowSession, build_federation_workflow

    definition = build_federation_workflow()
    session = WorkflowSession(
        definition,
        values={"googleAccessToken": google_token, "msGraphToken": graph_token},
    )

    statuses = await session.drive()
    result = await session.run("create-automation-ou")
"""

from ssoflow_runtime.auth import (
    ChunkedStore,
    RefreshResult,
    TokenManager,
    build_auth_url,
    decrypt,
    encrypt,
    exchange_code,
)
from ssoflow_runtime.context import CheckContext, ExecuteContext, UndoContext
from ssoflow_runtime.drivers import KeyedChannel, MemoryCookieJar, ResponseCookieJar
from ssoflow_runtime.engine import OperationResult, StepRunner
from ssoflow_runtime.env import SsoflowSettings, get_settings
from ssoflow_runtime.events import (
    BaseStreamEvent,
    CompleteEvent,
    LogEvent,
    LroEvent,
    PhaseEvent,
    StateEvent,
    StreamEvent,
    VarsEvent,
    encode_sse,
)
from ssoflow_runtime.exceptions import (
    AuthError,
    CheckFailed,
    ConfigurationError,
    ExecuteFailed,
    HttpError,
    MissingVariable,
    ReauthRequired,
    SsoflowError,
    StateCorrupt,
    UndoFailed,
    WorkflowError,
)
from ssoflow_runtime.http import ApiClient, Endpoints
from ssoflow_runtime.models import StepLogEntry, StepState, StepStatus, Token
from ssoflow_runtime.persistence import FileStateStore, PersistedState, dump_state, load_state
from ssoflow_runtime.registry import WorkflowDefinition
from ssoflow_runtime.session import WorkflowSession
from ssoflow_runtime.status import EffectiveStatus, compute_effective_status
from ssoflow_runtime.step import Step, define_step
from ssoflow_runtime.steps import ALL_STEPS, build_federation_workflow, generate_password
from ssoflow_runtime.var_store import VariableStore, VariableView
from ssoflow_runtime.variables import FEDERATION_VARIABLES, Var, VariableSpec

__all__ = [
    # Auth
    "ChunkedStore",
    "RefreshResult",
    "TokenManager",
    "build_auth_url",
    "decrypt",
    "encrypt",
    "exchange_code",
    # Contexts
    "CheckContext",
    "ExecuteContext",
    "UndoContext",
    # Drivers
    "KeyedChannel",
    "MemoryCookieJar",
    "ResponseCookieJar",
    # Engine
    "OperationResult",
    "StepRunner",
    "WorkflowSession",
    "EffectiveStatus",
    "compute_effective_status",
    # Settings
    "SsoflowSettings",
    "get_settings",
    # Events
    "BaseStreamEvent",
    "CompleteEvent",
    "LogEvent",
    "LroEvent",
    "PhaseEvent",
    "StateEvent",
    "StreamEvent",
    "VarsEvent",
    "encode_sse",
    # Exceptions
    "AuthError",
    "CheckFailed",
    "ConfigurationError",
    "ExecuteFailed",
    "HttpError",
    "MissingVariable",
    "ReauthRequired",
    "SsoflowError",
    "StateCorrupt",
    "UndoFailed",
    "WorkflowError",
    # HTTP
    "ApiClient",
    "Endpoints",
    # Models
    "StepLogEntry",
    "StepState",
    "StepStatus",
    "Token",
    # Persistence
    "FileStateStore",
    "PersistedState",
    "dump_state",
    "load_state",
    # Definitions
    "WorkflowDefinition",
    "Step",
    "define_step",
    "ALL_STEPS",
    "build_federation_workflow",
    "generate_password",
    # Variables
    "VariableStore",
    "VariableView",
    "FEDERATION_VARIABLES",
    "Var",
    "VariableSpec",
]
