"""Caching for folder hierarchies and folder listings."""

from .hierarchy_cache import (
    DEFAULT_TTL_SECONDS,
    HierarchyCache,
    HierarchySnapshot,
    tenant_cache_key,
)
from .level_cache import LevelCache

__all__ = [
    "DEFAULT_TTL_SECONDS",
    "HierarchyCache",
    "HierarchySnapshot",
    "LevelCache",
    "tenant_cache_key",
]
