"""Orchestration of folder resolution and folder actions."""

from .limiter import AdmissionLimiter, AdmissionStats
from .path_resolver import PathResolver, Strategy
from .folder_actions import FolderActions

__all__ = [
    "AdmissionLimiter",
    "AdmissionStats",
    "PathResolver",
    "Strategy",
    "FolderActions",
]
