"""ssoflow Runtime Protocols - Interface definitions.

This package contains Protocol classes (interfaces) that define contracts
for the swappable parts of ssoflow_runtime. Implementations are in
ssoflow_runtime.drivers.

Protocols:
- VariableChannel: Keyed pub/sub for variable changes
- CookieJar: Size-limited key/value storage for encrypted credentials

Import protocols directly from their modules to avoid circular imports:
    from ssoflow_runtime.protocols.cookies import CookieJar
"""

__all__ = [
    "CookieJar",
    "VariableChannel",
]
