"""Error types for folder resolution and caching.

Remote errors are always propagated; cache errors are contained by the
hierarchy cache; not-found and ambiguous-root errors are user-facing.
"""

from typing import Optional

AUTH_STATUS_CODES = {401, 403}


class PhysnaError(Exception):
    """Base class for all Physna CLI errors."""


class RemoteError(PhysnaError):
    """Transport, authentication or malformed-response failure from the API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        malformed: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.malformed = malformed

    @property
    def is_auth_error(self) -> bool:
        """Check if the failure was an authentication/authorization failure."""
        return self.status_code in AUTH_STATUS_CODES

    @property
    def is_transient(self) -> bool:
        """Whether retrying later could succeed: unreachable, rate limited or a server error."""
        if self.malformed or self.is_auth_error:
            return False
        return not self.status_code or self.status_code == 429 or self.status_code >= 500

    @property
    def hint(self) -> str:
        """Remediation hint for the user."""
        if self.is_auth_error:
            return (
                "Re-authenticate: check PHYSNA_CLIENT_ID / PHYSNA_CLIENT_SECRET "
                "or refresh PHYSNA_ACCESS_TOKEN."
            )
        return "Check your network connectivity and the PHYSNA_API_URL setting."

    def __str__(self) -> str:
        if self.status_code:
            return f"API error ({self.status_code}): {self.message}"
        return f"API error: {self.message}"


class FolderNotFoundError(PhysnaError):
    """A syntactically valid path that matches no folder."""

    def __init__(self, path: str):
        super().__init__(
            f"Folder '{path}' not found. Please verify the folder path exists in your tenant."
        )
        self.path = path


class AmbiguousRootError(PhysnaError):
    """Root path used where a single folder is required."""

    def __init__(self, path: str = "/", root_count: Optional[int] = None):
        detail = f" ({root_count} root folders)" if root_count is not None else ""
        super().__init__(
            f"Path '{path}' denotes the tenant's top level{detail}, not a single folder."
        )
        self.path = path
        self.root_count = root_count


class FolderNotEmptyError(PhysnaError):
    """Delete of a non-empty folder without force."""

    def __init__(self, folder_id: str):
        super().__init__(
            f"Folder {folder_id} is not empty. Use --force to delete the folder "
            "and all its contents."
        )
        self.folder_id = folder_id


class CacheError(PhysnaError):
    """Failure to read, write or deserialize a local cache snapshot."""
