"""Persistent per-tenant folder hierarchy cache.

Each tenant's hierarchy is stored as a single JSON snapshot under the cache
directory. Snapshots are replaced atomically (temp file then rename), so a
concurrent reader sees either the old or the new file, never a partial one.
Racing writers are tolerated: the last rename wins, and the content is always
re-derivable from the API.

Read failures of any kind are treated as a cache miss. Write failures raise
CacheError from save() but are only logged on the fetch path.
"""

import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional

import orjson
from pydantic import BaseModel, Field, ValidationError

from ..core.errors import CacheError, RemoteError
from ..hierarchy.folder_hierarchy import (
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_SIZE,
    FolderHierarchy,
    FolderLister,
    FolderNode,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class SnapshotNode(BaseModel):
    """A folder node as stored in a snapshot."""

    id: str
    name: str
    parent_id: Optional[str] = None
    children: list[str] = Field(default_factory=list)
    assets_count: Optional[int] = None
    folders_count: Optional[int] = None


class HierarchySnapshot(BaseModel):
    """On-disk form of a cached tenant hierarchy."""

    version: int = Field(default=SNAPSHOT_VERSION)
    tenant: str
    created_at: float = Field(description="Unix timestamp of the fetch")
    nodes: list[SnapshotNode] = Field(default_factory=list)
    root_ids: list[str] = Field(default_factory=list)

    def to_hierarchy(self) -> FolderHierarchy:
        return FolderHierarchy.from_nodes(
            FolderNode(
                id=node.id,
                name=node.name,
                parent_id=node.parent_id,
                assets_count=node.assets_count,
                folders_count=node.folders_count,
            )
            for node in self.nodes
        )


def tenant_cache_key(tenant: str) -> str:
    """Turn a tenant identifier into a safe file name stem."""
    key = _UNSAFE_FILENAME_CHARS.sub("_", tenant.strip())
    return key.lstrip(".") or "_"


class HierarchyCache:
    """Per-tenant folder hierarchy cache with TTL expiry.

    The cache directory and TTL are passed in explicitly; nothing is read
    from the process environment.
    """

    def __init__(
        self,
        cache_dir: Path,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        """Initialize the cache.

        Args:
            cache_dir: Directory holding one snapshot file per tenant.
            ttl_seconds: Age after which a snapshot counts as expired.
            clock: Returns the current Unix time (injectable for tests).
            page_size: Page size used when building from the API.
            max_pages: Pagination ceiling used when building from the API.
        """
        self._cache_dir = Path(cache_dir)
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._page_size = page_size
        self._max_pages = max_pages

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def cache_file_path(self, tenant: str) -> Path:
        """Path of a tenant's snapshot file."""
        return self._cache_dir / f"{tenant_cache_key(tenant)}.json"

    # -------------------------------------------------------------------------
    # Snapshot I/O
    # -------------------------------------------------------------------------

    def _read_snapshot(self, tenant: str) -> Optional[HierarchySnapshot]:
        """Read and validate a snapshot, returning None on any failure."""
        path = self.cache_file_path(tenant)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"No folder cache for tenant {tenant} at {path}")
            return None
        except OSError as e:
            logger.warning(f"Failed to read folder cache {path}: {e}")
            return None

        try:
            snapshot = HierarchySnapshot.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Ignoring corrupt folder cache {path}: {e}")
            return None

        if snapshot.version != SNAPSHOT_VERSION:
            logger.warning(
                f"Ignoring folder cache {path} with unsupported version {snapshot.version}"
            )
            return None
        if snapshot.tenant != tenant:
            logger.warning(
                f"Ignoring folder cache {path} written for tenant {snapshot.tenant}"
            )
            return None
        return snapshot

    def _is_expired(self, snapshot: HierarchySnapshot) -> bool:
        return self._clock() - snapshot.created_at >= self._ttl_seconds

    def load(self, tenant: str, allow_stale: bool = False) -> Optional[FolderHierarchy]:
        """Load a tenant's cached hierarchy.

        Args:
            tenant: Tenant ID.
            allow_stale: Return an expired snapshot instead of None.

        Returns:
            The cached FolderHierarchy, or None if absent, corrupt or expired.
        """
        snapshot = self._read_snapshot(tenant)
        if snapshot is None:
            return None

        if self._is_expired(snapshot) and not allow_stale:
            logger.debug(f"Folder cache for tenant {tenant} has expired")
            return None

        try:
            return snapshot.to_hierarchy()
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unusable folder cache for tenant {tenant}: {e}")
            return None

    def entry_age(self, tenant: str) -> Optional[float]:
        """Age of a tenant's snapshot in seconds, or None if there is none."""
        snapshot = self._read_snapshot(tenant)
        if snapshot is None:
            return None
        return self._clock() - snapshot.created_at

    def save(self, tenant: str, hierarchy: FolderHierarchy) -> Path:
        """Write a tenant's hierarchy, replacing any existing snapshot atomically.

        Returns:
            Path of the written snapshot.

        Raises:
            CacheError: The snapshot could not be written.
        """
        path = self.cache_file_path(tenant)
        payload = {
            "version": SNAPSHOT_VERSION,
            "tenant": tenant,
            "created_at": self._clock(),
            **hierarchy.to_dict(),
        }

        tmp_name: Optional[str] = None
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self._cache_dir,
                prefix=f".{path.stem}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(orjson.dumps(payload))
            os.replace(tmp_name, path)
        except (OSError, TypeError) as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise CacheError(f"Failed to write folder cache {path}: {e}") from e

        logger.debug(f"Saved folder cache for tenant {tenant} ({len(hierarchy)} folders)")
        return path

    def _save_best_effort(self, tenant: str, hierarchy: FolderHierarchy) -> None:
        try:
            self.save(tenant, hierarchy)
        except CacheError as e:
            logger.warning(f"{e}; continuing without cache")

    # -------------------------------------------------------------------------
    # Fetch path
    # -------------------------------------------------------------------------

    async def _build(self, tenant: str, service: FolderLister) -> FolderHierarchy:
        return await FolderHierarchy.build_from_api(
            service,
            tenant,
            per_page=self._page_size,
            max_pages=self._max_pages,
        )

    async def get_or_fetch(self, tenant: str, service: FolderLister) -> FolderHierarchy:
        """Return the cached hierarchy, building and caching it on a miss.

        When the build fails transiently (unreachable, rate limited or a 5xx)
        and a stale snapshot exists, the stale snapshot is returned instead.
        Authentication failures and malformed responses always propagate.

        Raises:
            RemoteError: The build failed and no snapshot may stand in for it.
        """
        cached = self.load(tenant)
        if cached is not None:
            logger.debug(f"Folder cache hit for tenant {tenant}")
            return cached

        try:
            hierarchy = await self._build(tenant, service)
        except RemoteError as e:
            if not e.is_transient:
                raise
            stale = self.load(tenant, allow_stale=True)
            if stale is None:
                raise
            logger.warning(f"Using stale folder cache for tenant {tenant}: {e}")
            return stale

        self._save_best_effort(tenant, hierarchy)
        return hierarchy

    async def refresh(self, tenant: str, service: FolderLister) -> FolderHierarchy:
        """Rebuild a tenant's hierarchy from the API and overwrite the cache."""
        hierarchy = await self._build(tenant, service)
        self._save_best_effort(tenant, hierarchy)
        return hierarchy

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate(self, tenant: str) -> bool:
        """Delete a tenant's snapshot.

        Returns:
            True if a snapshot was removed, False if there was none.

        Raises:
            CacheError: The snapshot exists but could not be removed.
        """
        path = self.cache_file_path(tenant)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheError(f"Failed to remove folder cache {path}: {e}") from e
        logger.debug(f"Invalidated folder cache for tenant {tenant}")
        return True

    def purge(self) -> int:
        """Delete every tenant snapshot in the cache directory.

        Returns:
            Number of snapshots removed.
        """
        if not self._cache_dir.is_dir():
            return 0

        removed = 0
        for path in self._cache_dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheError(f"Failed to remove folder cache {path}: {e}") from e
        logger.debug(f"Purged {removed} folder cache files from {self._cache_dir}")
        return removed
