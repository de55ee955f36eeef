"""Type definitions and Pydantic models."""

from .folders import FolderListPage, FolderRecord, PageData

__all__ = [
    "FolderListPage",
    "FolderRecord",
    "PageData",
]
