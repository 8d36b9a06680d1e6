"""ssoflow - Google Workspace and Microsoft Entra SSO federation.

CLI and HTTP server for the federation workflow in ssoflow_runtime.
"""

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

__version__ = "0.1.0"

__all__ = [
    # Base exception
    "SsoflowError",
    # Configuration
    "ConfigurationError",
    # Workflow
    "WorkflowError",
    "MissingVariable",
    "CheckFailed",
    "ExecuteFailed",
    "UndoFailed",
    "StateCorrupt",
    # Auth
    "AuthError",
    "ReauthRequired",
    # HTTP
    "HttpError",
]
