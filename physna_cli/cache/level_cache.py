"""In-memory cache of folder listings, one entry per parent folder.

Used by incremental path resolution so that paths sharing a prefix only list
each level once.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..types.folders import FolderRecord

logger = logging.getLogger(__name__)

ROOT_KEY = "ROOT"
DEFAULT_LEVEL_TTL_SECONDS = 24 * 60 * 60


@dataclass
class LevelEntry:
    """Cached direct sub-folders of one parent."""

    folders: list[FolderRecord]
    fetched_at: float


class LevelCache:
    """Thread-safe TTL cache keyed by (tenant, parent folder id)."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_LEVEL_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], LevelEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _key(tenant: str, parent_id: Optional[str]) -> tuple[str, str]:
        return (tenant, parent_id or ROOT_KEY)

    def get(self, tenant: str, parent_id: Optional[str]) -> Optional[list[FolderRecord]]:
        """Get the cached children of a parent, or None if absent or expired."""
        key = self._key(tenant, parent_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry.fetched_at < self._ttl_seconds:
                self._hits += 1
                return entry.folders
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

    def put(self, tenant: str, parent_id: Optional[str], folders: list[FolderRecord]) -> None:
        """Store the children of a parent."""
        with self._lock:
            self._entries[self._key(tenant, parent_id)] = LevelEntry(
                folders=list(folders),
                fetched_at=self._clock(),
            )

    def clear(self, tenant: Optional[str] = None) -> None:
        """Drop every entry, or only those of one tenant."""
        with self._lock:
            if tenant is None:
                self._entries.clear()
            else:
                for key in [k for k in self._entries if k[0] == tenant]:
                    del self._entries[key]

    def get_stats(self) -> dict[str, int]:
        """Get cache statistics."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
            }
