"""REST API client for the Physna API.

Every request returns a result dict ``{ok, status_code, data[, error]}``
instead of raising, so callers decide which failures are fatal. Within one
request the client:
- retries 429 and 5xx responses with exponential backoff (429 honors Retry-After)
- refreshes the access token once per 401 and repeats the request
- retries transport errors and timeouts, reporting status_code 0 when they persist
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..core.config import PhysnaConfig, get_config
from ..core.errors import RemoteError
from .auth import TokenManager, get_token_manager

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY = 1.0  # Base delay in seconds
RETRY_BACKOFF = 2.0  # Exponential backoff multiplier
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
DEFAULT_RATE_LIMIT_DELAY = 60.0  # 429 without a usable Retry-After header

AUTH_FAILED_MESSAGE = "Authentication failed. Please check your credentials and log in again."


@dataclass
class AttemptOutcome:
    """What to do after one request attempt.

    A set ``result`` ends the request; otherwise the caller waits ``delay``
    seconds and tries again.
    """

    result: Optional[dict[str, Any]] = None
    delay: float = 0.0


def _backoff(attempt: int) -> float:
    return RETRY_DELAY * (RETRY_BACKOFF**attempt)


def to_result(response: httpx.Response) -> dict[str, Any]:
    """Convert an HTTP response into the standard result dict."""
    result: dict[str, Any] = {
        "ok": response.is_success,
        "status_code": response.status_code,
    }
    try:
        result["data"] = response.json()
    except ValueError:
        result["data"] = response.text
    if not response.is_success:
        result["error"] = response.text or response.reason_phrase
    return result


class RESTClient:
    """Physna REST client with a shared retry policy for sync and async calls."""

    def __init__(
        self,
        config: Optional[PhysnaConfig] = None,
        token_manager: Optional[TokenManager] = None,
        transport: Optional[Any] = None,
    ):
        """Initialize the REST client.

        Args:
            config: Physna configuration. If None, loads from environment.
            token_manager: Token manager instance. If None, uses default.
            transport: Optional httpx transport shared by sync and async
                requests (e.g. ``httpx.MockTransport`` in tests).
        """
        self._config = config or get_config()
        self._token_manager = token_manager or get_token_manager(self._config)
        self._transport = transport
        self._debug = self._config.rest_debug

    @property
    def base_url(self) -> str:
        return self._config.api_url

    @property
    def timeout(self) -> float:
        """Per-request timeout in seconds."""
        return self._config.request_timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _trace(self, message: str) -> None:
        if self._debug:
            logger.debug(message)

    def _auth_headers(self) -> dict[str, str]:
        """Bearer headers for the current token.

        Raises:
            RemoteError: The token endpoint rejected the request or no token is configured.
            httpx.RequestError: The token endpoint could not be reached.
        """
        token = self._token_manager.get_token()
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    def _try_refresh(self) -> bool:
        try:
            self._token_manager.force_refresh()
        except RemoteError as e:
            logger.debug(f"Token refresh failed: {e}")
            return False
        return True

    @staticmethod
    def _token_failure(error: RemoteError) -> dict[str, Any]:
        """Result dict for a token that could not be obtained."""
        message = f"{AUTH_FAILED_MESSAGE} ({error.message})" if error.is_auth_error else error.message
        return {"ok": False, "status_code": error.status_code or 0, "error": message}

    @staticmethod
    def _rate_limit_delay(response: httpx.Response) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                logger.debug(f"Ignoring non-numeric Retry-After header: {retry_after}")
        return DEFAULT_RATE_LIMIT_DELAY

    def _on_response(self, response: httpx.Response, attempt: int) -> AttemptOutcome:
        """Decide whether a response ends the request or triggers another attempt."""
        self._trace(f"Response {response.status_code}: {response.text[:1000]}")
        final = attempt + 1 >= MAX_RETRIES
        status = response.status_code

        if status == 401 and not final:
            logger.debug("Got 401, refreshing token")
            if self._try_refresh():
                return AttemptOutcome()
            return AttemptOutcome(result=to_result(response))

        if status in RETRYABLE_STATUS_CODES and not final:
            delay = self._rate_limit_delay(response) if status == 429 else _backoff(attempt)
            logger.debug(
                f"Got {status}, retrying in {delay}s (attempt {attempt + 1}/{MAX_RETRIES})"
            )
            return AttemptOutcome(delay=delay)

        return AttemptOutcome(result=to_result(response))

    @staticmethod
    def _on_transport_error(error: httpx.RequestError, attempt: int) -> AttemptOutcome:
        kind = "timeout" if isinstance(error, httpx.TimeoutException) else "error"
        logger.debug(f"Request {kind}: {error} (attempt {attempt + 1}/{MAX_RETRIES})")
        if attempt + 1 >= MAX_RETRIES:
            return AttemptOutcome(
                result={"ok": False, "status_code": 0, "error": str(error) or kind}
            )
        return AttemptOutcome(delay=_backoff(attempt))

    def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Make a synchronous request.

        Args:
            method: HTTP method.
            path: API path relative to the base URL, e.g. "/tenants/{id}/folders".
            **kwargs: Passed to ``httpx.Client.request`` (params, json, ...).

        Returns:
            Result dict with ok, status_code, data and, on failure, error.
        """
        url = self._url(path)
        self._trace(f"REST {method} {url} {kwargs or ''}")

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(MAX_RETRIES):
                try:
                    headers = self._auth_headers()
                    response = client.request(method, url, headers=headers, **kwargs)
                    outcome = self._on_response(response, attempt)
                except RemoteError as e:
                    return self._token_failure(e)
                except httpx.RequestError as e:
                    outcome = self._on_transport_error(e, attempt)
                if outcome.result is not None:
                    return outcome.result
                time.sleep(outcome.delay)

        return {"ok": False, "status_code": 0, "error": "Max retries exceeded"}

    async def request_async(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Asynchronous counterpart of ``request`` with the same retry policy."""
        url = self._url(path)
        self._trace(f"REST {method} {url} {kwargs or ''}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(MAX_RETRIES):
                try:
                    headers = self._auth_headers()
                    response = await client.request(method, url, headers=headers, **kwargs)
                    outcome = self._on_response(response, attempt)
                except RemoteError as e:
                    return self._token_failure(e)
                except httpx.RequestError as e:
                    outcome = self._on_transport_error(e, attempt)
                if outcome.result is not None:
                    return outcome.result
                await asyncio.sleep(outcome.delay)

        return {"ok": False, "status_code": 0, "error": "Max retries exceeded"}

    def get(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return self.request("GET", path, **kwargs)

    async def get_async(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request_async("GET", path, **kwargs)

    async def post_async(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request_async("POST", path, **kwargs)

    async def patch_async(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request_async("PATCH", path, **kwargs)

    async def delete_async(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request_async("DELETE", path, **kwargs)


_default_client: Optional[RESTClient] = None


def get_rest_client(config: Optional[PhysnaConfig] = None) -> RESTClient:
    """Get or create the process-wide REST client."""
    global _default_client
    if _default_client is None:
        _default_client = RESTClient(config)
    return _default_client


def reset_rest_client() -> None:
    global _default_client
    _default_client = None
