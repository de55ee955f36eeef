"""Folder listing renderers.

The same folder entries can be rendered as:
- JSON (orjson, indented)
- CSV (one row per folder)
- Text tree (nested by parent)
"""

import csv
import logging
from datetime import datetime
from enum import Enum
from io import StringIO
from typing import Any, Iterable

import orjson

from ..hierarchy.folder_hierarchy import FolderHierarchy, FolderNode

logger = logging.getLogger(__name__)


class OutputFormat(str, Enum):
    """Supported folder listing formats."""

    JSON = "json"
    CSV = "csv"
    TREE = "tree"


FOLDER_COLUMNS = [
    ("id", "ID"),
    ("name", "Name"),
    ("path", "Path"),
    ("parent_id", "Parent ID"),
    ("assets_count", "Assets"),
    ("folders_count", "Folders"),
]


def json_dumps(obj: Any) -> bytes:
    """Serialize object to JSON bytes using orjson."""
    return orjson.dumps(
        obj,
        option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS,
        default=_json_default,
    )


def _json_default(obj: Any) -> Any:
    """Default serializer for non-standard types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(by_alias=True)
    raise TypeError(f"Cannot serialize {type(obj)}")


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def render_json(entries: list[dict[str, Any]]) -> str:
    return json_dumps(entries).decode("utf-8")


def render_csv(entries: list[dict[str, Any]]) -> str:
    """Render folder entries as CSV with a header row."""
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow([header for _, header in FOLDER_COLUMNS])
    for entry in entries:
        writer.writerow([_csv_value(entry.get(field)) for field, _ in FOLDER_COLUMNS])
    return output.getvalue()


def render_tree(entries: Iterable[dict[str, Any]]) -> str:
    """Render folder entries as a text tree.

    Entries whose parent is not among the entries become top-level lines.
    """
    hierarchy = FolderHierarchy.from_nodes(
        FolderNode(id=entry["id"], name=entry["name"], parent_id=entry.get("parent_id"))
        for entry in entries
    )
    return hierarchy.render_tree()


_RENDERERS = {
    OutputFormat.JSON: render_json,
    OutputFormat.CSV: render_csv,
    OutputFormat.TREE: render_tree,
}


def render_folders(entries: list[dict[str, Any]], fmt: OutputFormat) -> str:
    """Render folder entries in the requested format.

    Args:
        entries: Folder entries with at least id, name and path.
        fmt: Output format.

    Returns:
        Rendered text.
    """
    renderer = _RENDERERS.get(OutputFormat(fmt))
    if renderer is None:
        raise ValueError(f"Unsupported output format: {fmt}")
    return renderer(entries)
