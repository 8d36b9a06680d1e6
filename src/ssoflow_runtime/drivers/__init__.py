"""ssoflow Runtime Drivers - Protocol implementations.

This package contains concrete implementations of the protocols
defined in ssoflow_runtime.protocols.

Drivers:
- Channel: KeyedChannel
- Cookies: MemoryCookieJar, ResponseCookieJar
"""

from ssoflow_runtime.drivers.channel import KeyedChannel, Subscription
from ssoflow_runtime.drivers.cookies import MemoryCookieJar, ResponseCookieJar

__all__ = [
    "KeyedChannel",
    "Subscription",
    "MemoryCookieJar",
    "ResponseCookieJar",
]
