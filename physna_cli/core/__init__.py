"""Core infrastructure for the Physna CLI."""

from .config import get_config, PhysnaConfig
from .errors import (
    AmbiguousRootError,
    CacheError,
    FolderNotEmptyError,
    FolderNotFoundError,
    PhysnaError,
    RemoteError,
)

__all__ = [
    # Config
    "get_config",
    "PhysnaConfig",
    # Errors
    "AmbiguousRootError",
    "CacheError",
    "FolderNotEmptyError",
    "FolderNotFoundError",
    "PhysnaError",
    "RemoteError",
]
