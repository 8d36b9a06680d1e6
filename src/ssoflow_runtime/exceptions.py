"""ssoflow exception hierarchy.

Expected business outcomes (a resource is missing, a role already exists)
are routed through step outcome callbacks and never raise. The classes here
cover what is left:

- Configuration problems detected at startup
- Workflow invariants violated at invocation time
- OAuth failures, with re-consent surfaced separately from transient errors
- Remote API failures, mapped from HTTP status codes

Usage:
    from ssoflow_runtime.exceptions import MissingVariable, NotFoundError

    try:
        user_id = ctx.vars.require("provisioningUserId")
    except MissingVariable as e:
        print(f"Run {e.producer} first")
"""

from typing import Any


class SsoflowError(Exception):
    """Base exception for all ssoflow errors.

    All ssoflow-specific exceptions inherit from this class, allowing
    callers to catch all of them with a single except clause.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# Configuration Errors


class ConfigurationError(SsoflowError):
    """Missing or invalid settings.

    Raised when a required secret (AUTH_SECRET, OAuth client credentials)
    is not present in the environment or .env file.
    """

    def __init__(self, setting: str, detail: str | None = None) -> None:
        self.setting = setting
        message = f"{setting.upper()} is not configured"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Workflow Errors


class WorkflowError(SsoflowError):
    """Base class for workflow-related errors."""

    pass


class MissingVariable(WorkflowError):
    """A required variable is absent at invocation time.

    Names the producing step when it is known so the operator knows
    which step to run first.
    """

    def __init__(self, name: str, producer: str | None = None) -> None:
        self.name = name
        self.producer = producer
        super().__init__(describe_missing(name, producer))


class CheckFailed(WorkflowError):
    """Transient reconciliation failure.

    Distinct from a confirmed "not yet done": the remote state could not
    be read, so nothing is known about it.
    """

    def __init__(self, reason: str, detail: Any = None) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"Check failed: {reason}")


class ExecuteFailed(WorkflowError):
    """A mutating call failed. The message is preserved verbatim."""

    pass


class UndoFailed(WorkflowError):
    """Reversal failed. Provided variables are kept for operator retry."""

    pass


class StateCorrupt(WorkflowError):
    """Persisted state failed schema validation on load."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Persisted state is corrupt: {detail}")


class UnknownStepError(WorkflowError):
    """Step id does not exist in the workflow definition."""

    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Unknown step: {step_id}")


class StepBusyError(WorkflowError):
    """Step is already checking, executing or undoing."""

    def __init__(self, step_id: str, activity: str) -> None:
        self.step_id = step_id
        self.activity = activity
        super().__init__(f"Step {step_id} is already {activity}")


class InvalidWorkflowError(WorkflowError):
    """Workflow definition is malformed.

    Raised for duplicate step ids, variables with more than one producer,
    and dependency cycles.
    """

    pass


# Auth Errors


class AuthError(SsoflowError):
    """Base class for OAuth failures."""

    pass


class ReauthRequired(AuthError):
    """Refresh token rejected or a required scope is missing.

    The caller should prompt the user to repeat consent rather than retry.
    """

    def __init__(self, provider: str, reason: str | None = None) -> None:
        self.provider = provider
        self.reason = reason
        message = f"Re-authentication required for {provider}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CryptoError(AuthError):
    """Ciphertext is malformed or fails authentication."""

    pass


class InvalidStateError(AuthError):
    """OAuth state nonce is missing, expired or mismatched."""

    pass


class TokenExchangeError(AuthError):
    """Authorization code exchange returned a non-2xx response.

    The raw response body is attached for diagnosis.
    """

    def __init__(self, provider: str, status: int, body: str) -> None:
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(f"Token exchange failed for {provider} ({status}): {body}")


# HTTP Errors


class HttpError(SsoflowError):
    """Remote API returned an error status.

    A status of 0 means the request never produced a response.
    """

    def __init__(
        self,
        status: int,
        detail: str | None = None,
        body: Any = None,
        url: str | None = None,
    ) -> None:
        self.status = status
        self.detail = detail
        self.body = body
        self.url = url
        message = f"HTTP {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NotFoundError(HttpError):
    """HTTP 404."""

    def __init__(self, detail: str | None = None, body: Any = None, url: str | None = None) -> None:
        super().__init__(404, detail, body, url)


class ConflictError(HttpError):
    """HTTP 409."""

    def __init__(self, detail: str | None = None, body: Any = None, url: str | None = None) -> None:
        super().__init__(409, detail, body, url)


class PreconditionFailedError(HttpError):
    """HTTP 412."""

    def __init__(self, detail: str | None = None, body: Any = None, url: str | None = None) -> None:
        super().__init__(412, detail, body, url)


def describe_missing(name: str, producer: str | None = None) -> str:
    """Human-readable reason for an unset variable."""
    if producer:
        return f"Missing {name} (provided by {producer})"
    return f"Missing {name}"


def is_http_error(error: BaseException, status: int | None = None) -> bool:
    """True if error is an HttpError, optionally with the given status."""
    if not isinstance(error, HttpError):
        return False
    return status is None or error.status == status


def is_not_found(error: BaseException) -> bool:
    return is_http_error(error, 404)


def is_conflict(error: BaseException) -> bool:
    return is_http_error(error, 409)


def is_precondition_failed(error: BaseException) -> bool:
    return is_http_error(error, 412)


def is_bad_request(error: BaseException) -> bool:
    return is_http_error(error, 400)


def error_message(error: BaseException, fallback: str) -> str:
    """Message of an exception, or fallback when it has none."""
    if isinstance(error, SsoflowError):
        return error.message
    text = str(error)
    return text or fallback


__all__ = [
    "SsoflowError",
    "ConfigurationError",
    "WorkflowError",
    "MissingVariable",
    "CheckFailed",
    "ExecuteFailed",
    "UndoFailed",
    "StateCorrupt",
    "UnknownStepError",
    "StepBusyError",
    "InvalidWorkflowError",
    "AuthError",
    "ReauthRequired",
    "CryptoError",
    "InvalidStateError",
    "TokenExchangeError",
    "HttpError",
    "NotFoundError",
    "ConflictError",
    "PreconditionFailedError",
    "describe_missing",
    "is_http_error",
    "is_not_found",
    "is_conflict",
    "is_precondition_failed",
    "is_bad_request",
    "error_message",
]
