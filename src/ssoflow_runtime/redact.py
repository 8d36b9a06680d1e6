"""Redaction of sensitive values before diagnostic output."""

from collections.abc import Iterable, Mapping
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_KEY_PARTS = ("token", "password", "secret", "certificate")


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def redact(data: Any, sensitive_values: Iterable[str] = ()) -> Any:
    """Recursively replace sensitive values.

    Mapping entries whose key looks sensitive are replaced, as is any
    string equal to one of sensitive_values (a token or password that ended
    up under an innocent key).
    """
    values = frozenset(v for v in sensitive_values if isinstance(v, str) and v)
    return _redact(data, values)


def _redact(data: Any, values: frozenset[str]) -> Any:
    if isinstance(data, Mapping):
        return {
            key: REDACTED if isinstance(key, str) and is_sensitive_key(key) else _redact(value, values)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [_redact(item, values) for item in data]
    if isinstance(data, str) and data in values:
        return REDACTED
    return data


def redact_vars(variables: Mapping[str, Any], sensitive: Iterable[str]) -> dict[str, Any]:
    """Copy of variables with values of sensitive names replaced."""
    names = frozenset(sensitive)
    return {
        name: REDACTED if name in names and value is not None else value
        for name, value in variables.items()
    }


def mask_token(token: str | None) -> str:
    """First 10 characters of a bearer token, for request logs."""
    if not token:
        return "<none>"
    return f"{token[:10]}..."
