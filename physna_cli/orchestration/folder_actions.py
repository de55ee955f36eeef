"""Folder command actions.

Combines the folder service, the hierarchy cache and the path resolver into
the operations the CLI exposes. Every successful mutation invalidates the
tenant's cached hierarchy so the next lookup sees the change.
"""

import logging
from typing import Any, Optional

from ..cache.hierarchy_cache import HierarchyCache
from ..cache.level_cache import LevelCache
from ..clients.folder_service import FolderService
from ..clients.rest_client import RESTClient
from ..core.config import PhysnaConfig
from ..core.errors import AmbiguousRootError, CacheError, FolderNotFoundError
from ..hierarchy.folder_hierarchy import FolderHierarchy
from ..hierarchy.paths import ROOT_PATH, normalize_path
from ..types.folders import FolderRecord
from .limiter import AdmissionLimiter
from .path_resolver import PathResolver, Strategy

logger = logging.getLogger(__name__)


class FolderActions:
    """High-level folder operations for one CLI invocation."""

    def __init__(
        self,
        service: FolderService,
        cache: HierarchyCache,
        resolver: Optional[PathResolver] = None,
    ):
        """Initialize folder actions.

        Args:
            service: Folder service.
            cache: Persistent hierarchy cache.
            resolver: Path resolver. If None, one is created over the same
                service and cache.
        """
        self._service = service
        self._cache = cache
        self._resolver = resolver or PathResolver(service, cache)

    @classmethod
    def from_config(
        cls,
        config: PhysnaConfig,
        strategy: Strategy = Strategy.HIERARCHY,
        rest_client: Optional[RESTClient] = None,
    ) -> "FolderActions":
        """Wire up the service, caches and resolver from configuration."""
        service = FolderService(rest_client or RESTClient(config))
        cache = HierarchyCache(
            config.cache_dir,  # type: ignore[arg-type]
            ttl_seconds=config.cache_ttl_seconds,
            page_size=config.page_size,
            max_pages=config.max_pages,
        )
        resolver = PathResolver(
            service,
            cache,
            strategy=strategy,
            level_cache=LevelCache(ttl_seconds=config.cache_ttl_seconds),
            limiter=AdmissionLimiter(config.max_concurrent),
            page_size=config.page_size,
            max_pages=config.max_pages,
        )
        return cls(service, cache, resolver)

    @property
    def cache(self) -> HierarchyCache:
        return self._cache

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_hierarchy(self, tenant: str, refresh: bool = False) -> FolderHierarchy:
        """Get the tenant's hierarchy, from cache unless refresh is set."""
        if refresh:
            return await self.refresh(tenant)
        return await self._cache.get_or_fetch(tenant, self._service)

    async def resolve_path(self, tenant: str, path: str) -> Optional[str]:
        """Resolve a path to a folder id; None denotes the root."""
        return await self._resolver.resolve(tenant, path)

    async def resolve_paths(
        self,
        tenant: str,
        paths: list[str],
        raise_missing: bool = True,
    ) -> dict[str, Any]:
        """Resolve several paths at once."""
        return await self._resolver.resolve_many(tenant, paths, raise_missing=raise_missing)

    async def list_children(
        self,
        tenant: str,
        path: str = ROOT_PATH,
        direct_only: bool = True,
        refresh: bool = False,
    ) -> list[dict[str, Any]]:
        """List the folders below a path.

        Args:
            tenant: Tenant ID.
            path: Folder path; "/" lists the top-level folders.
            direct_only: Direct sub-folders only, or every descendant.
            refresh: Rebuild the hierarchy from the API first.

        Returns:
            Ordered folder entries with id, name and path.
        """
        hierarchy = await self.get_hierarchy(tenant, refresh=refresh)
        return hierarchy.list_children(path, direct_only=direct_only)

    async def render_tree(
        self,
        tenant: str,
        path: Optional[str] = None,
        refresh: bool = False,
    ) -> str:
        """Render the tenant's folders, or the subtree at a path, as text."""
        hierarchy = await self.get_hierarchy(tenant, refresh=refresh)
        if path is None or normalize_path(path) == ROOT_PATH:
            return hierarchy.render_tree()

        subtree = hierarchy.filter_by_path(normalize_path(path))
        if subtree is None:
            raise FolderNotFoundError(normalize_path(path))
        return subtree.render_tree()

    async def get_folder(self, tenant: str, path: str) -> FolderRecord:
        """Fetch the details of the folder at a path."""
        return await self._resolver.resolve_folder(tenant, path=path)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _require_folder_id(self, tenant: str, path: str) -> str:
        """Resolve a path that must name a single folder."""
        folder_id = await self._resolver.resolve(tenant, path)
        if folder_id is None:
            raise AmbiguousRootError(normalize_path(path))
        return folder_id

    async def create_folder(
        self,
        tenant: str,
        name: str,
        parent_path: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> FolderRecord:
        """Create a folder under a parent given by path or id (top level if neither)."""
        if not name or not name.strip():
            raise ValueError("Folder name must not be empty")
        if parent_path is not None and parent_id is not None:
            raise ValueError("Only one of parent path or parent id can be given")

        if parent_path is not None:
            parent_id = await self._resolver.resolve(tenant, parent_path)

        folder = await self._service.create_folder(tenant, name.strip(), parent_id)
        logger.info(f"Created folder '{folder.name}' ({folder.id})")
        self._after_mutation(tenant)
        return folder

    async def rename_folder(self, tenant: str, path: str, new_name: str) -> FolderRecord:
        """Rename the folder at a path."""
        if not new_name or not new_name.strip():
            raise ValueError("New folder name must not be empty")

        folder_id = await self._require_folder_id(tenant, path)
        folder = await self._service.rename_folder(tenant, folder_id, new_name.strip())
        logger.info(f"Renamed folder {folder_id} to '{folder.name}'")
        self._after_mutation(tenant)
        return folder

    async def move_folder(
        self,
        tenant: str,
        path: str,
        parent_path: Optional[str] = None,
    ) -> FolderRecord:
        """Move the folder at a path under a new parent; "/" or None moves it to the top level."""
        folder_id = await self._require_folder_id(tenant, path)
        new_parent_id = None
        if parent_path is not None:
            new_parent_id = await self._resolver.resolve(tenant, parent_path)
        if new_parent_id == folder_id:
            raise ValueError("A folder cannot be moved into itself")

        folder = await self._service.move_folder(tenant, folder_id, new_parent_id)
        logger.info(f"Moved folder {folder_id} to {new_parent_id or 'ROOT'}")
        self._after_mutation(tenant)
        return folder

    async def delete_folder(self, tenant: str, path: str, force: bool = False) -> str:
        """Delete the folder at a path.

        Returns:
            The id of the deleted folder.

        Raises:
            AmbiguousRootError: The path is the root path.
            FolderNotEmptyError: The folder has contents and force is not set.
        """
        folder_id = await self._require_folder_id(tenant, path)
        await self._service.delete_folder(tenant, folder_id, force=force)
        logger.info(f"Deleted folder {folder_id}")
        self._after_mutation(tenant)
        return folder_id

    # -------------------------------------------------------------------------
    # Cache control
    # -------------------------------------------------------------------------

    async def refresh(self, tenant: str) -> FolderHierarchy:
        """Rebuild the tenant's hierarchy from the API and re-cache it."""
        self._resolver.clear(tenant)
        return await self._cache.refresh(tenant, self._service)

    def invalidate(self, tenant: str) -> bool:
        """Drop every cached folder listing for the tenant."""
        self._resolver.clear(tenant)
        return self._cache.invalidate(tenant)

    def _after_mutation(self, tenant: str) -> None:
        try:
            self.invalidate(tenant)
        except CacheError as e:
            logger.warning(f"{e}; cached folder paths may be stale")
