"""Pydantic models for the ssoflow runtime.

These models define step runtime state, structured step logs, long-running
operation descriptors and OAuth tokens.
"""

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class StepStatus(str, Enum):
    """Stored or effective status of a workflow step."""

    READY = "ready"
    BLOCKED = "blocked"
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETE = "complete"
    FAILED = "failed"
    UNDOING = "undoing"
    STALE = "stale"
    REVERTED = "reverted"


class LogLevel(str, Enum):
    """Severity of a step log line."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class StepPhase(str, Enum):
    """Which operation of a step is currently running."""

    CHECK = "check"
    EXECUTE = "execute"
    UNDO = "undo"


class StepLogEntry(BaseModel):
    """A single structured log line attached to a step."""

    timestamp: int = Field(default_factory=now_ms, description="Epoch milliseconds")
    level: LogLevel = Field(default=LogLevel.INFO, description="Severity")
    message: str = Field(..., description="Log message")
    data: Any = Field(default=None, description="Redacted structured payload")
    method: str | None = Field(default=None, description="HTTP method for API calls")
    url: str | None = Field(default=None, description="Request URL for API calls")
    status: int | None = Field(default=None, description="HTTP status for API responses")


class LroInfo(BaseModel):
    """Descriptor for a remote operation not confirmed complete on return."""

    detected: bool = True
    operation_type: str = Field(..., description="google-operation or ms-async")
    estimated_seconds: int = Field(..., description="Rough duration hint for the UI")
    started_at: int = Field(default_factory=now_ms)


class StepState(BaseModel):
    """Runtime state of one step within a session.

    `logs` is append-only. The is_* flags implement single-flight per step:
    the driving loop refuses to invoke a step while any of them is set.
    """

    status: StepStatus = StepStatus.READY
    summary: str | None = None
    error: str | None = None
    notes: str | None = None
    block_reason: str | None = None
    logs: list[StepLogEntry] = Field(default_factory=list)
    lro: LroInfo | None = None
    is_checking: bool = False
    is_executing: bool = False
    is_undoing: bool = False

    @property
    def busy(self) -> str | None:
        """Name of the in-flight activity, or None when idle."""
        if self.is_checking:
            return "checking"
        if self.is_executing:
            return "executing"
        if self.is_undoing:
            return "undoing"
        return None


class Token(BaseModel):
    """OAuth token owned by the token lifecycle.

    Only copied scalars (access token string, expiry) are handed to the
    variable store.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_at: int = Field(..., alias="expiresAt", description="Epoch milliseconds")
    scope: list[str] = Field(default_factory=list)

    def expires_within(self, buffer_ms: int, now: int | None = None) -> bool:
        """True when the token expires before now + buffer_ms."""
        current = now_ms() if now is None else now
        return current >= self.expires_at - buffer_ms
