"""Folder wire models returned by the Physna folder endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class FolderRecord(BaseModel):
    """A single folder as returned by the API."""

    id: str = Field(description="Folder ID")
    name: str = Field(description="Folder name")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    parent_folder_id: Optional[str] = Field(default=None, alias="parentFolderId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    assets_count: Optional[int] = Field(default=None, alias="assetsCount")
    folders_count: Optional[int] = Field(default=None, alias="foldersCount")
    owner_id: Optional[str] = Field(default=None, alias="ownerId")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def is_empty(self) -> bool:
        """Check whether the folder holds no assets and no sub-folders."""
        return not (self.assets_count or 0) and not (self.folders_count or 0)


class PageData(BaseModel):
    """Pagination block of a folder listing (1-based pages)."""

    total: int = Field(default=0)
    per_page: int = Field(default=0, alias="perPage")
    current_page: int = Field(default=1, alias="currentPage")
    last_page: int = Field(default=1, alias="lastPage")
    start_index: Optional[int] = Field(default=None, alias="startIndex")
    end_index: Optional[int] = Field(default=None, alias="endIndex")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def is_last(self) -> bool:
        """Check whether this is the final page."""
        return self.current_page >= self.last_page


class FolderListPage(BaseModel):
    """One page of a folder listing."""

    folders: list[FolderRecord] = Field(default_factory=list)
    page_data: PageData = Field(default_factory=PageData, alias="pageData")

    model_config = {"populate_by_name": True, "extra": "allow"}
