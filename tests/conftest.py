"""Shared fixtures: an in-memory folder service and folder record helpers."""

from collections import Counter
from typing import Optional

import pytest

from physna_cli.cache.hierarchy_cache import HierarchyCache
from physna_cli.core.errors import FolderNotEmptyError, RemoteError
from physna_cli.types.folders import FolderListPage, FolderRecord, PageData


def folder(folder_id: str, name: str, parent_id: Optional[str] = None, **extra) -> FolderRecord:
    """Build a folder record."""
    return FolderRecord(id=folder_id, name=name, parent_folder_id=parent_id, **extra)


def _page(records: list[FolderRecord], page: int, per_page: int) -> FolderListPage:
    last_page = max(1, -(-len(records) // per_page))
    start = (page - 1) * per_page
    return FolderListPage(
        folders=records[start:start + per_page],
        page_data=PageData(
            total=len(records),
            per_page=per_page,
            current_page=page,
            last_page=last_page,
        ),
    )


class FakeFolderService:
    """In-memory folder service that counts its calls."""

    def __init__(self, records: Optional[list[FolderRecord]] = None):
        self.records: dict[str, FolderRecord] = {r.id: r for r in records or []}
        self.calls: Counter = Counter()
        self.error: Optional[RemoteError] = None
        self._next_id = 1000

    def _check(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.error is not None:
            raise self.error

    async def list_folders(self, tenant: str, page: int = 1, per_page: int = 200) -> FolderListPage:
        self._check("list_folders")
        return _page(list(self.records.values()), page, per_page)

    async def list_folders_in_parent(
        self,
        tenant: str,
        parent_id: Optional[str] = None,
        page: int = 1,
        per_page: int = 200,
    ) -> FolderListPage:
        self._check("list_folders_in_parent")
        children = [r for r in self.records.values() if r.parent_folder_id == parent_id]
        return _page(children, page, per_page)

    async def get_folder(self, tenant: str, folder_id: str) -> FolderRecord:
        self._check("get_folder")
        if folder_id not in self.records:
            raise RemoteError(f"Folder {folder_id} not found", status_code=404)
        return self.records[folder_id]

    async def create_folder(self, tenant: str, name: str, parent_id: Optional[str] = None) -> FolderRecord:
        self._check("create_folder")
        self._next_id += 1
        record = folder(str(self._next_id), name, parent_id)
        self.records[record.id] = record
        return record

    async def rename_folder(self, tenant: str, folder_id: str, new_name: str) -> FolderRecord:
        self._check("rename_folder")
        record = self.records[folder_id].model_copy(update={"name": new_name})
        self.records[folder_id] = record
        return record

    async def move_folder(
        self,
        tenant: str,
        folder_id: str,
        new_parent_id: Optional[str] = None,
    ) -> FolderRecord:
        self._check("move_folder")
        record = self.records[folder_id].model_copy(update={"parent_folder_id": new_parent_id})
        self.records[folder_id] = record
        return record

    async def delete_folder(self, tenant: str, folder_id: str, force: bool = False) -> None:
        self._check("delete_folder")
        has_children = any(r.parent_folder_id == folder_id for r in self.records.values())
        if has_children and not force:
            raise FolderNotEmptyError(folder_id)
        del self.records[folder_id]


@pytest.fixture
def scenario_records():
    """Root -> Child1 -> Grandchild1."""
    return [
        folder("1", "Root"),
        folder("2", "Child1", "1"),
        folder("3", "Grandchild1", "2"),
    ]


@pytest.fixture
def forest_records():
    """Two roots with a few levels below each."""
    return [
        folder("a", "Projects"),
        folder("b", "Archive"),
        folder("a1", "Engine", "a"),
        folder("a2", "Chassis", "a"),
        folder("a11", "Pistons", "a1"),
        folder("a12", "Valves", "a1"),
        folder("b1", "2023", "b"),
    ]


@pytest.fixture
def fake_service(forest_records):
    return FakeFolderService(forest_records)


@pytest.fixture
def hierarchy_cache(tmp_path):
    return HierarchyCache(tmp_path / "folder_cache", ttl_seconds=3600)
