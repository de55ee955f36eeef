"""Folder path helpers."""

import re

ROOT_PATH = "/"
PATH_SEPARATOR = "/"

_REPEATED_SEPARATORS = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    """Normalize a user-supplied folder path.

    Surrounding whitespace is stripped, backslashes become forward slashes,
    repeated separators collapse and the trailing separator is dropped.
    The result always starts with "/"; an empty path becomes "/".

    Args:
        path: Raw folder path, e.g. "Root//Sub/" or "Root\\Sub".

    Returns:
        Normalized path, e.g. "/Root/Sub".
    """
    cleaned = (path or "").strip().replace("\\", PATH_SEPARATOR)
    cleaned = _REPEATED_SEPARATORS.sub(PATH_SEPARATOR, cleaned).strip(PATH_SEPARATOR)
    return f"{PATH_SEPARATOR}{cleaned}"


def is_root_path(path: str) -> bool:
    """Check whether a path denotes the tenant's top level."""
    return normalize_path(path) == ROOT_PATH


def split_path(path: str) -> list[str]:
    """Split a path into its folder name segments.

    The root path yields an empty list.
    """
    normalized = normalize_path(path)
    if normalized == ROOT_PATH:
        return []
    return normalized[1:].split(PATH_SEPARATOR)


def join_path(parent: str, name: str) -> str:
    """Join a display path and a child folder name."""
    if not parent or parent == ROOT_PATH:
        return f"{PATH_SEPARATOR}{name}"
    return f"{parent.rstrip(PATH_SEPARATOR)}{PATH_SEPARATOR}{name}"
