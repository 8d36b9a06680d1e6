"""Long-running operation classification.

Runs after each API call and only feeds the UI; it never affects blocking
or step status.
"""

from typing import Any

from ssoflow_runtime.models import LroInfo

GOOGLE_OPERATION = "google-operation"
MS_ASYNC = "ms-async"

GOOGLE_OPERATION_SECONDS = 30
MS_ASYNC_SECONDS = 60


def detect_lro(status_code: int, body: Any) -> LroInfo | None:
    """Classify a response as a long-running operation, or None if synchronous.

    A body carrying both `name` and `done` is a polling-style operation
    resource; a 202 with anything else is a fire-and-forget async job.
    """
    if isinstance(body, dict) and "name" in body and "done" in body:
        return LroInfo(operation_type=GOOGLE_OPERATION, estimated_seconds=GOOGLE_OPERATION_SECONDS)
    if status_code == 202:
        return LroInfo(operation_type=MS_ASYNC, estimated_seconds=MS_ASYNC_SECONDS)
    return None
