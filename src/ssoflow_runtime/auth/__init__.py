"""OAuth token lifecycle: encryption, chunked storage, flow and refresh."""

from ssoflow_runtime.auth.chunked import CHUNK_SIZE, ChunkedStore
from ssoflow_runtime.auth.crypto import decrypt, encrypt, generate_state
from ssoflow_runtime.auth.oauth import (
    PROVIDER_NAMES,
    ProviderConfig,
    build_auth_url,
    exchange_code,
    provider_config,
)
from ssoflow_runtime.auth.tokens import (
    REAUTH_ERROR_CODES,
    RefreshResult,
    TokenManager,
    token_cookie,
)

__all__ = [
    "CHUNK_SIZE",
    "ChunkedStore",
    "decrypt",
    "encrypt",
    "generate_state",
    "PROVIDER_NAMES",
    "ProviderConfig",
    "build_auth_url",
    "exchange_code",
    "provider_config",
    "REAUTH_ERROR_CODES",
    "RefreshResult",
    "TokenManager",
    "token_cookie",
]
