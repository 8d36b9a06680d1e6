"""Environment configuration for ssoflow.

Uses pydantic-settings for type-safe configuration with custom directory-tree
search for .env files. Searches from the current directory up to home.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

from ssoflow_runtime.exceptions import ConfigurationError


class SsoflowSettings(BaseSettings):
    """ssoflow settings loaded from the environment and .env.

    Secrets are optional at load time so that commands which never touch
    OAuth (listing steps, computing status) work without them; use
    `require` to fetch one that must be present.
    """

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Token encryption
    auth_secret: str | None = None

    # OAuth clients
    google_oauth_client_id: str | None = None
    google_oauth_client_secret: str | None = None
    microsoft_oauth_client_id: str | None = None
    microsoft_oauth_client_secret: str | None = None
    microsoft_tenant: str | None = None
    google_hd_domain: str | None = None

    # Server
    base_url: str = "http://localhost:8000"
    cookie_secure: bool = False

    # Token lifecycle
    token_refresh_timeout: float = 5.0
    token_refresh_buffer_ms: int = 5 * 60 * 1000
    oauth_state_ttl_ms: int = 10 * 60 * 1000

    # Remote APIs
    http_timeout: float = 30.0
    http_max_retries: int = 3

    def require(self, name: str) -> str:
        """Get a string setting, raising if it is unset or empty.

        Raises:
            ConfigurationError: Naming the environment variable to set
        """
        value = getattr(self, name)
        if not value:
            raise ConfigurationError(name, "set it in the environment or your .env file")
        return value

    def redirect_uri(self, provider: str) -> str:
        return f"{self.base_url.rstrip('/')}/api/auth/callback/{provider}"


def find_dotenv(start_path: Path | None = None) -> Path | None:
    """Find .env file by searching up the directory tree.

    Searches from start_path (or cwd) up to home directory.
    Returns the first .env file found, or None if not found.
    """
    current = start_path or Path.cwd()
    home = Path.home()

    while current >= home:
        candidate = current / ".env"
        if candidate.exists():
            return candidate
        if current == current.parent:
            break
        current = current.parent

    return None


@lru_cache(maxsize=1)
def get_settings() -> SsoflowSettings:
    """Get cached settings instance.

    Finds .env by searching up directory tree, then loads settings.
    Cached to avoid repeated file I/O.
    """
    env_file = find_dotenv()
    if env_file:
        return SsoflowSettings(_env_file=env_file)
    return SsoflowSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
