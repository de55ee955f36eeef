"""Folder Directory Service client.

Thin async wrapper over the REST client for the tenant folder endpoints.
Non-success results and malformed payloads are raised as RemoteError so
callers never confuse an API failure with a missing folder.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from ..core.errors import FolderNotEmptyError, RemoteError
from ..types.folders import FolderListPage, FolderRecord
from .rest_client import RESTClient, get_rest_client

logger = logging.getLogger(__name__)

# API default is 20 per page; always send an explicit page size
DEFAULT_PAGE_SIZE = 200


def _raise_for_result(result: dict[str, Any], action: str) -> None:
    """Raise RemoteError for a non-success REST result."""
    if result.get("ok"):
        return
    status_code = result.get("status_code") or None
    error = result.get("error") or "Unknown error"
    raise RemoteError(f"Failed to {action}: {error}", status_code=status_code)


def _parse_folder(data: Any, action: str) -> FolderRecord:
    """Parse a single-folder payload, accepting both wrapped and bare forms."""
    if isinstance(data, dict) and isinstance(data.get("folder"), dict):
        data = data["folder"]
    try:
        return FolderRecord.model_validate(data)
    except ValidationError as e:
        raise RemoteError(
            f"Malformed folder response while trying to {action}: {e}", malformed=True
        ) from e


def _parse_page(data: Any, action: str) -> FolderListPage:
    try:
        return FolderListPage.model_validate(data)
    except ValidationError as e:
        raise RemoteError(
            f"Malformed folder listing while trying to {action}: {e}", malformed=True
        ) from e


class FolderService:
    """Async client for the tenant folder endpoints."""

    def __init__(self, rest_client: Optional[RESTClient] = None):
        """Initialize the folder service.

        Args:
            rest_client: REST client instance. If None, uses the default.
        """
        self._rest = rest_client or get_rest_client()

    @staticmethod
    def _folders_path(tenant: str) -> str:
        return f"/tenants/{tenant}/folders"

    async def list_folders(
        self,
        tenant: str,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> FolderListPage:
        """List one page of every folder in the tenant.

        Args:
            tenant: Tenant ID.
            page: 1-based page number.
            per_page: Page size.

        Returns:
            FolderListPage with the flat folder records and page data.
        """
        result = await self._rest.get_async(
            self._folders_path(tenant),
            params={"page": page, "perPage": per_page},
        )
        _raise_for_result(result, "list folders")
        return _parse_page(result.get("data"), "list folders")

    async def list_folders_in_parent(
        self,
        tenant: str,
        parent_id: Optional[str] = None,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> FolderListPage:
        """List one page of the direct sub-folders of a parent.

        Args:
            tenant: Tenant ID.
            parent_id: Parent folder ID, or None for the tenant's top level.
            page: 1-based page number.
            per_page: Page size.
        """
        params: dict[str, Any] = {"contentType": "folders"}
        if parent_id is not None:
            params["parentFolderId"] = parent_id
        params["page"] = page
        params["perPage"] = per_page

        result = await self._rest.get_async(self._folders_path(tenant), params=params)
        _raise_for_result(result, "list folders in parent")
        return _parse_page(result.get("data"), "list folders in parent")

    async def get_folder(self, tenant: str, folder_id: str) -> FolderRecord:
        """Fetch a single folder's details."""
        result = await self._rest.get_async(f"{self._folders_path(tenant)}/{folder_id}")
        _raise_for_result(result, f"get folder {folder_id}")
        return _parse_folder(result.get("data"), f"get folder {folder_id}")

    async def create_folder(
        self,
        tenant: str,
        name: str,
        parent_id: Optional[str] = None,
    ) -> FolderRecord:
        """Create a folder, optionally under a parent folder."""
        body: dict[str, Any] = {"name": name}
        if parent_id is not None:
            body["parentFolderId"] = parent_id

        result = await self._rest.post_async(self._folders_path(tenant), json=body)
        _raise_for_result(result, f"create folder '{name}'")
        return _parse_folder(result.get("data"), f"create folder '{name}'")

    async def rename_folder(self, tenant: str, folder_id: str, new_name: str) -> FolderRecord:
        """Rename a folder."""
        logger.debug(f"Renaming folder {folder_id} to '{new_name}'")
        result = await self._rest.patch_async(
            f"{self._folders_path(tenant)}/{folder_id}/name",
            json={"name": new_name},
        )
        _raise_for_result(result, f"rename folder {folder_id}")
        return _parse_folder(result.get("data"), f"rename folder {folder_id}")

    async def move_folder(
        self,
        tenant: str,
        folder_id: str,
        new_parent_id: Optional[str] = None,
    ) -> FolderRecord:
        """Move a folder under a new parent; None moves it to the top level."""
        logger.debug(f"Moving folder {folder_id} to parent {new_parent_id or 'ROOT'}")
        result = await self._rest.patch_async(
            f"{self._folders_path(tenant)}/{folder_id}/parent",
            json={"parentFolderId": new_parent_id},
        )
        _raise_for_result(result, f"move folder {folder_id}")
        return _parse_folder(result.get("data"), f"move folder {folder_id}")

    async def delete_folder(self, tenant: str, folder_id: str, force: bool = False) -> None:
        """Delete a folder.

        Args:
            tenant: Tenant ID.
            folder_id: Folder to delete.
            force: Delete even when the folder has contents.

        Raises:
            FolderNotEmptyError: The folder has contents and force is not set.
            RemoteError: The API call failed.
        """
        folder = await self.get_folder(tenant, folder_id)
        if not folder.is_empty and not force:
            raise FolderNotEmptyError(folder_id)

        result = await self._rest.delete_async(f"{self._folders_path(tenant)}/{folder_id}")
        # The API answers 404 when a folder it just reported still has contents
        if result.get("status_code") == 404 and not force:
            raise FolderNotEmptyError(folder_id)
        _raise_for_result(result, f"delete folder {folder_id}")
        logger.debug(f"Deleted folder {folder_id}")
