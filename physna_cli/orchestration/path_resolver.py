"""Folder path to folder id resolution.

Two strategies are supported:

- HIERARCHY: load the tenant's whole hierarchy through the persistent cache
  (building it from the API on a miss) and look the path up in memory. Best
  when many paths are resolved in one invocation.
- INCREMENTAL: list only the folders on the path, one level per request,
  caching each level's listing in memory. Best for a single path in a large
  tenant.

The root path ("/" or empty) is the tenant's top level, not a folder, and
always resolves to None. A path that matches nothing raises
FolderNotFoundError. API failures propagate as RemoteError and are never
reported as a missing folder.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol, Union

from ..cache.hierarchy_cache import HierarchyCache
from ..cache.level_cache import LevelCache
from ..core.errors import AmbiguousRootError, FolderNotFoundError, RemoteError
from ..hierarchy.folder_hierarchy import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE, FolderHierarchy
from ..hierarchy.paths import ROOT_PATH, normalize_path, split_path
from ..types.folders import FolderListPage, FolderRecord
from .limiter import AdmissionLimiter

logger = logging.getLogger(__name__)

ResolveResult = Union[Optional[str], FolderNotFoundError]


class Strategy(str, Enum):
    """Path resolution strategies."""

    HIERARCHY = "hierarchy"
    INCREMENTAL = "incremental"


class FolderDirectory(Protocol):
    """The folder service operations path resolution relies on."""

    async def list_folders(self, tenant: str, page: int = 1, per_page: int = ...) -> FolderListPage:
        ...

    async def list_folders_in_parent(
        self,
        tenant: str,
        parent_id: Optional[str] = None,
        page: int = 1,
        per_page: int = ...,
    ) -> FolderListPage:
        ...

    async def get_folder(self, tenant: str, folder_id: str) -> FolderRecord:
        ...


def _sort_key(record: FolderRecord) -> tuple[str, str]:
    return (record.name, record.id)


class PathResolver:
    """Resolves folder paths to folder ids."""

    def __init__(
        self,
        service: FolderDirectory,
        cache: HierarchyCache,
        strategy: Strategy = Strategy.HIERARCHY,
        level_cache: Optional[LevelCache] = None,
        limiter: Optional[AdmissionLimiter] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        """Initialize the resolver.

        Args:
            service: Folder service used for API lookups.
            cache: Persistent hierarchy cache.
            strategy: Default resolution strategy.
            level_cache: Per-level listing cache for incremental resolution.
            limiter: Admission limiter for bulk resolution.
            page_size: Page size for level listings.
            max_pages: Pagination ceiling for level listings.
        """
        self._service = service
        self._cache = cache
        self._strategy = strategy
        self._level_cache = level_cache or LevelCache()
        self._limiter = limiter or AdmissionLimiter()
        self._page_size = page_size
        self._max_pages = max_pages
        self._level_locks: dict[tuple[str, Optional[str]], asyncio.Lock] = {}

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @property
    def level_cache(self) -> LevelCache:
        return self._level_cache

    async def resolve(
        self,
        tenant: str,
        path: str,
        strategy: Optional[Strategy] = None,
    ) -> Optional[str]:
        """Resolve a folder path to a folder id.

        Args:
            tenant: Tenant ID.
            path: Folder path such as "/Root/Sub".
            strategy: Overrides the resolver's default strategy.

        Returns:
            The folder id, or None for the root path.

        Raises:
            FolderNotFoundError: No folder matches the path.
            RemoteError: The API could not be queried.
        """
        normalized = normalize_path(path)
        if normalized == ROOT_PATH:
            return None

        strategy = strategy or self._strategy
        if strategy == Strategy.INCREMENTAL:
            return await self._resolve_incremental(tenant, normalized)

        hierarchy = await self._cache.get_or_fetch(tenant, self._service)
        return self._lookup(hierarchy, normalized)

    @staticmethod
    def _lookup(hierarchy: FolderHierarchy, normalized: str) -> str:
        node = hierarchy.get_folder_by_path(normalized)
        if node is None:
            raise FolderNotFoundError(normalized)
        return node.id

    async def _resolve_incremental(self, tenant: str, normalized: str) -> str:
        parent_id: Optional[str] = None
        for segment in split_path(normalized):
            children = await self._list_level(tenant, parent_id)
            match = next(
                (f for f in sorted(children, key=_sort_key) if f.name == segment),
                None,
            )
            if match is None:
                logger.debug(f"No folder named '{segment}' under {parent_id or 'ROOT'}")
                raise FolderNotFoundError(normalized)
            parent_id = match.id
        return parent_id  # type: ignore[return-value]

    async def _list_level(self, tenant: str, parent_id: Optional[str]) -> list[FolderRecord]:
        """All direct sub-folders of a parent, served from the level cache when fresh."""
        cached = self._level_cache.get(tenant, parent_id)
        if cached is not None:
            return cached

        lock = self._level_locks.setdefault((tenant, parent_id), asyncio.Lock())
        async with lock:
            # Another task may have filled the level while we waited
            cached = self._level_cache.get(tenant, parent_id)
            if cached is not None:
                return cached

            folders: list[FolderRecord] = []
            for page in range(1, self._max_pages + 1):
                listing = await self._service.list_folders_in_parent(
                    tenant,
                    parent_id,
                    page=page,
                    per_page=self._page_size,
                )
                folders.extend(listing.folders)
                if listing.page_data.is_last:
                    break
            else:
                raise RemoteError(
                    f"Listing of folder {parent_id or 'ROOT'} did not finish "
                    f"within {self._max_pages} pages"
                )

            self._level_cache.put(tenant, parent_id, folders)
            logger.debug(f"Cached {len(folders)} sub-folders of {parent_id or 'ROOT'}")
            return folders

    async def resolve_many(
        self,
        tenant: str,
        paths: list[str],
        raise_missing: bool = True,
        strategy: Optional[Strategy] = None,
    ) -> dict[str, ResolveResult]:
        """Resolve several paths.

        The whole-hierarchy strategy loads the hierarchy once for all paths;
        the incremental strategy resolves paths concurrently under the
        admission limiter.

        Args:
            tenant: Tenant ID.
            paths: Folder paths to resolve.
            raise_missing: Raise on the first unmatched path when True,
                otherwise map it to its FolderNotFoundError.
            strategy: Overrides the resolver's default strategy.

        Returns:
            Mapping of each input path to its folder id (None for root).
        """
        strategy = strategy or self._strategy
        results: dict[str, ResolveResult] = {}

        if strategy == Strategy.HIERARCHY:
            hierarchy: Optional[FolderHierarchy] = None
            for path in paths:
                normalized = normalize_path(path)
                if normalized == ROOT_PATH:
                    results[path] = None
                    continue
                if hierarchy is None:
                    hierarchy = await self._cache.get_or_fetch(tenant, self._service)
                try:
                    results[path] = self._lookup(hierarchy, normalized)
                except FolderNotFoundError as e:
                    if raise_missing:
                        raise
                    results[path] = e
            return results

        async def resolve_one(path: str) -> ResolveResult:
            try:
                return await self.resolve(tenant, path, strategy=strategy)
            except FolderNotFoundError as e:
                if raise_missing:
                    raise
                return e

        resolved = await self._limiter.gather(resolve_one(path) for path in paths)
        for path, result in zip(paths, resolved):
            results[path] = result
        return results

    async def resolve_folder(
        self,
        tenant: str,
        folder_id: Optional[str] = None,
        path: Optional[str] = None,
    ) -> FolderRecord:
        """Fetch a folder's details by id or by path.

        Raises:
            ValueError: Neither or both of folder_id and path were given.
            AmbiguousRootError: The path is the root path.
            FolderNotFoundError: The path does not match a folder.
        """
        if (folder_id is None) == (path is None):
            raise ValueError("Exactly one of folder_id or path must be given")

        if folder_id is None:
            folder_id = await self.resolve(tenant, path)  # type: ignore[arg-type]
            if folder_id is None:
                raise AmbiguousRootError(normalize_path(path or ""))

        return await self._service.get_folder(tenant, folder_id)

    def clear(self, tenant: Optional[str] = None) -> None:
        """Forget cached level listings and their locks, for one tenant or all."""
        self._level_cache.clear(tenant)
        if tenant is None:
            self._level_locks.clear()
        else:
            for key in [k for k in self._level_locks if k[0] == tenant]:
                del self._level_locks[key]
