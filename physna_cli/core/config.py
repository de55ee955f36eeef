"""Configuration management for the Physna CLI.

Loads configuration from environment variables with .env file support.
The loaded values are passed explicitly to the clients and caches; nothing
below the CLI layer reads the process environment.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

APP_NAME = "physna-cli"
APP_AUTHOR = "physna"

DEFAULT_API_URL = "https://app-api.physna.com/v3"
DEFAULT_AUTH_URL = "https://physna-app.auth.us-east-2.amazoncognito.com/oauth2/token"
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60


def get_default_cache_dir() -> Path:
    """Get the platform-specific folder cache directory."""
    return Path(platformdirs.user_cache_dir(APP_NAME, APP_AUTHOR)) / "folder_cache"


@dataclass
class PhysnaConfig:
    """Physna API and folder cache configuration."""

    api_url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL
    client_id: str = ""
    client_secret: str = ""
    access_token: Optional[str] = None
    tenant: Optional[str] = None
    cache_dir: Optional[Path] = None
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    page_size: int = 200  # API default is 20, maximum is 1000
    max_pages: int = 1000  # Hard ceiling for pagination loops
    request_timeout: float = 60.0
    max_concurrent: int = 5
    rest_debug: bool = False

    def __post_init__(self):
        """Resolve the default cache directory."""
        if self.cache_dir is None:
            self.cache_dir = get_default_cache_dir()

    @property
    def has_credentials(self) -> bool:
        """Check whether client credentials are configured."""
        return bool(self.client_id and self.client_secret)

    def validate(self) -> list[str]:
        """Validate required configuration fields.

        Returns:
            List of validation error messages, empty if valid.
        """
        errors = []
        if not self.api_url:
            errors.append("PHYSNA_API_URL is required")
        if not self.has_credentials and not self.access_token:
            errors.append(
                "PHYSNA_CLIENT_ID and PHYSNA_CLIENT_SECRET (or PHYSNA_ACCESS_TOKEN) are required"
            )
        if self.cache_ttl_seconds < 0:
            errors.append("PHYSNA_CACHE_TTL must not be negative")
        if self.page_size < 1 or self.page_size > 1000:
            errors.append("PHYSNA_PAGE_SIZE must be between 1 and 1000")
        if self.max_pages < 1:
            errors.append("PHYSNA_MAX_PAGES must be at least 1")
        if self.max_concurrent < 1:
            errors.append("PHYSNA_MAX_CONCURRENT must be at least 1")
        if self.request_timeout <= 0:
            errors.append("PHYSNA_REQUEST_TIMEOUT must be positive")
        return errors

    def with_overrides(self, **overrides: Any) -> "PhysnaConfig":
        """Return a copy of this configuration with some fields replaced.

        None values are ignored so CLI options can be passed through as-is.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def _env_number(name: str, default: str, kind: type = int) -> Any:
    raw = os.environ.get(name, default).strip() or default
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def get_config() -> PhysnaConfig:
    """Load configuration from environment variables.

    Returns:
        PhysnaConfig instance populated from environment.

    Raises:
        ValueError: A numeric variable is not a number.
    """
    cache_dir = os.environ.get("PHYSNA_CACHE_DIR")

    return PhysnaConfig(
        api_url=os.environ.get("PHYSNA_API_URL", DEFAULT_API_URL).rstrip("/"),
        auth_url=os.environ.get("PHYSNA_AUTH_URL", DEFAULT_AUTH_URL),
        client_id=os.environ.get("PHYSNA_CLIENT_ID", ""),
        client_secret=os.environ.get("PHYSNA_CLIENT_SECRET", ""),
        access_token=os.environ.get("PHYSNA_ACCESS_TOKEN") or None,
        tenant=os.environ.get("PHYSNA_TENANT") or None,
        cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
        cache_ttl_seconds=_env_number("PHYSNA_CACHE_TTL", str(DEFAULT_CACHE_TTL_SECONDS)),
        page_size=_env_number("PHYSNA_PAGE_SIZE", "200"),
        max_pages=_env_number("PHYSNA_MAX_PAGES", "1000"),
        request_timeout=_env_number("PHYSNA_REQUEST_TIMEOUT", "60", float),
        max_concurrent=_env_number("PHYSNA_MAX_CONCURRENT", "5"),
        rest_debug=os.environ.get("PHYSNA_REST_DEBUG", "").lower() == "true",
    )
