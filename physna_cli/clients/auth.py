"""Access tokens for the Physna API.

Tokens come from one of two places:
- a statically configured PHYSNA_ACCESS_TOKEN, used until the API rejects it
- the OAuth2 client-credentials grant, when PHYSNA_CLIENT_ID/SECRET are set

Refreshes are single-flight: concurrent callers that hit an expired or
rejected token wait for one token request instead of each issuing their own.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from ..core.config import PhysnaConfig, get_config
from ..core.errors import RemoteError

logger = logging.getLogger(__name__)

# Refresh this long before the server-side expiry
TOKEN_EXPIRY_BUFFER_SECONDS = 60

# Lifetime assumed for a statically configured access token
STATIC_TOKEN_LIFETIME_SECONDS = 3600

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# Token endpoint statuses that mean the credentials were refused
TOKEN_REJECTION_CODES = {400, 401, 403}


@dataclass
class IssuedToken:
    """An access token and the Unix time it stops being usable."""

    access_token: str
    expires_at: float

    def is_usable(self, now: float) -> bool:
        return now < self.expires_at - TOKEN_EXPIRY_BUFFER_SECONDS


class TokenManager:
    """Caches the tenant access token and refreshes it on demand."""

    def __init__(
        self,
        config: Optional[PhysnaConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the token manager.

        Args:
            config: Physna configuration. If None, loads from environment.
            transport: Optional httpx transport for the token endpoint.
        """
        self._config = config or get_config()
        self._transport = transport
        self._condition = threading.Condition()
        self._refreshing = False
        self._token: Optional[IssuedToken] = None

        if self._config.access_token:
            self._token = IssuedToken(
                access_token=self._config.access_token,
                expires_at=time.time() + STATIC_TOKEN_LIFETIME_SECONDS,
            )

    @property
    def config(self) -> PhysnaConfig:
        return self._config

    def _usable_token(self) -> Optional[str]:
        token = self._token
        if token is not None and token.is_usable(time.time()):
            return token.access_token
        return None

    def get_token(self) -> str:
        """Return a usable access token, requesting a new one if needed.

        Raises:
            RemoteError: No token is configured and none can be requested.
        """
        return self._usable_token() or self._refresh(stale=None)

    def force_refresh(self) -> str:
        """Replace the current token after the API rejected it with a 401."""
        return self._refresh(stale=self._token.access_token if self._token else None)

    def _refresh(self, stale: Optional[str]) -> str:
        """Request a new token unless another caller already replaced ``stale``."""
        with self._condition:
            while self._refreshing:
                self._condition.wait()
            current = self._usable_token()
            if current is not None and current != stale:
                return current
            self._refreshing = True

        issued: Optional[IssuedToken] = None
        try:
            issued = self._request_token()
        finally:
            with self._condition:
                if issued is not None:
                    self._token = issued
                self._refreshing = False
                self._condition.notify_all()
        return issued.access_token

    def _request_token(self) -> IssuedToken:
        """Run the client-credentials grant against the auth URL."""
        if not self._config.has_credentials:
            raise RemoteError(
                "No client credentials available for re-authentication",
                status_code=401,
            )

        logger.debug(f"Requesting access token from {self._config.auth_url}")
        with httpx.Client(
            timeout=self._config.request_timeout, transport=self._transport
        ) as client:
            response = client.post(
                self._config.auth_url,
                data={"grant_type": "client_credentials"},
                auth=(self._config.client_id, self._config.client_secret),
            )

        if not response.is_success:
            # The endpoint answers a bad grant with 400; anything else is a server fault
            status = 401 if response.status_code in TOKEN_REJECTION_CODES else response.status_code
            raise RemoteError(
                f"Authentication failed: HTTP {response.status_code}: {response.text[:200]}",
                status_code=status,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise RemoteError(f"Malformed token response: {e}", malformed=True) from e

        lifetime = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        return IssuedToken(access_token=access_token, expires_at=time.time() + float(lifetime))

    def invalidate(self) -> None:
        """Drop the cached token; the next call requests a new one."""
        with self._condition:
            self._token = None


_default_manager: Optional[TokenManager] = None
_manager_lock = threading.Lock()


def get_token_manager(config: Optional[PhysnaConfig] = None) -> TokenManager:
    """Get or create the process-wide token manager.

    Args:
        config: Physna configuration. Only used if creating a new manager.
    """
    global _default_manager
    if _default_manager is None:
        with _manager_lock:
            if _default_manager is None:
                _default_manager = TokenManager(config)
    return _default_manager


def reset_token_manager() -> None:
    """Reset the process-wide token manager."""
    global _default_manager
    with _manager_lock:
        _default_manager = None
