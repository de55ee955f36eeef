"""Output rendering for folder listings."""

from .renderers import (
    FOLDER_COLUMNS,
    OutputFormat,
    json_dumps,
    render_csv,
    render_folders,
    render_json,
    render_tree,
)

__all__ = [
    "FOLDER_COLUMNS",
    "OutputFormat",
    "json_dumps",
    "render_csv",
    "render_folders",
    "render_json",
    "render_tree",
]
