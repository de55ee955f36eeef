"""Folder hierarchy model and path helpers."""

from .folder_hierarchy import FolderHierarchy, FolderNode
from .paths import ROOT_PATH, is_root_path, join_path, normalize_path, split_path

__all__ = [
    "FolderHierarchy",
    "FolderNode",
    "ROOT_PATH",
    "is_root_path",
    "join_path",
    "normalize_path",
    "split_path",
]
