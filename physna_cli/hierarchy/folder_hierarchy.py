"""In-memory folder hierarchy for a tenant.

The API returns folders as a flat, paginated list of parent pointers with no
guarantee that a parent arrives before its children. The hierarchy is
therefore built in two phases: every record is inserted first, then every
parent/child edge is linked. Roots are folders without a parent, or whose
parent is not part of the fetched set.

Sibling names are not guaranteed unique by the API. Wherever a name is
matched or rendered, siblings are ordered by (name, id) so that lookups and
output are reproducible.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol

from rich.console import Console

from ..core.errors import FolderNotFoundError, RemoteError
from ..types.folders import FolderListPage, FolderRecord
from .paths import PATH_SEPARATOR, ROOT_PATH, is_root_path, normalize_path

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200
DEFAULT_MAX_PAGES = 1000


class FolderLister(Protocol):
    """Anything that can list a tenant's folders page by page."""

    async def list_folders(self, tenant: str, page: int = 1, per_page: int = ...) -> FolderListPage:
        ...


@dataclass
class FolderNode:
    """A single folder and the ids of its direct sub-folders."""

    id: str
    name: str
    parent_id: Optional[str] = None
    children: set[str] = field(default_factory=set)
    assets_count: Optional[int] = None
    folders_count: Optional[int] = None

    @classmethod
    def from_record(cls, record: FolderRecord) -> "FolderNode":
        """Create an unlinked node from an API folder record."""
        return cls(
            id=record.id,
            name=record.name,
            parent_id=record.parent_folder_id,
            assets_count=record.assets_count,
            folders_count=record.folders_count,
        )

    def copy(self) -> "FolderNode":
        """Independent copy of this node."""
        return FolderNode(
            id=self.id,
            name=self.name,
            parent_id=self.parent_id,
            children=set(self.children),
            assets_count=self.assets_count,
            folders_count=self.folders_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the snapshot representation."""
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "children": sorted(self.children),
            "assets_count": self.assets_count,
            "folders_count": self.folders_count,
        }


def _sort_key(node: FolderNode) -> tuple[str, str]:
    return (node.name, node.id)


class FolderHierarchy:
    """Forest of folders keyed by id.

    Instances are not modified after construction; filtering produces a new,
    independent hierarchy.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, FolderNode] = {}
        self._root_ids: set[str] = set()

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[FolderRecord]) -> "FolderHierarchy":
        """Build a hierarchy from a flat list of folder records in any order."""
        return cls.from_nodes(FolderNode.from_record(record) for record in records)

    @classmethod
    def from_nodes(cls, nodes: Iterable[FolderNode]) -> "FolderHierarchy":
        """Build a hierarchy from nodes, relinking children from parent pointers.

        Any children already present on the nodes are discarded; the parent
        pointers are the single source of truth.
        """
        hierarchy = cls()
        for node in nodes:
            hierarchy._insert(node.copy())
        hierarchy._link_all()
        return hierarchy

    @classmethod
    async def build_from_api(
        cls,
        service: FolderLister,
        tenant: str,
        per_page: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> "FolderHierarchy":
        """Build a tenant's full hierarchy by paging through every folder.

        Args:
            service: Folder service used to list folders.
            tenant: Tenant ID.
            per_page: Page size requested from the API.
            max_pages: Hard ceiling on the number of pages fetched.

        Returns:
            The complete FolderHierarchy.

        Raises:
            RemoteError: A page could not be fetched, or the listing did not
                reach its last page within max_pages.
        """
        records: list[FolderRecord] = []

        for page in range(1, max_pages + 1):
            listing = await service.list_folders(tenant, page=page, per_page=per_page)
            records.extend(listing.folders)
            logger.debug(
                f"Fetched folder page {listing.page_data.current_page}/"
                f"{listing.page_data.last_page} ({len(listing.folders)} folders)"
            )
            if listing.page_data.is_last:
                break
        else:
            raise RemoteError(
                f"Folder listing for tenant {tenant} did not finish within {max_pages} pages"
            )

        hierarchy = cls.from_records(records)
        logger.debug(
            f"Built folder hierarchy for tenant {tenant}: "
            f"{len(hierarchy)} folders, {len(hierarchy.root_ids)} roots"
        )
        return hierarchy

    def _insert(self, node: FolderNode) -> None:
        """Insert a node, linking it to its parent if that is already known."""
        node.children.clear()
        self._nodes[node.id] = node
        parent = self._nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            parent.children.add(node.id)

    def _link_all(self) -> None:
        """Repair children for parents inserted after their children, then find roots."""
        for node in self._nodes.values():
            if node.parent_id and node.parent_id in self._nodes:
                self._nodes[node.parent_id].children.add(node.id)

        self._root_ids = {
            node.id
            for node in self._nodes.values()
            if not node.parent_id or node.parent_id not in self._nodes
        }

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> Mapping[str, FolderNode]:
        """Read-only mapping of folder id to node."""
        return MappingProxyType(self._nodes)

    @property
    def root_ids(self) -> frozenset[str]:
        """Ids of the root folders."""
        return frozenset(self._root_ids)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._nodes

    def _sorted(self, ids: Iterable[str]) -> list[FolderNode]:
        return sorted((self._nodes[i] for i in ids if i in self._nodes), key=_sort_key)

    def root_nodes(self) -> list[FolderNode]:
        """Root folders ordered by name."""
        return self._sorted(self._root_ids)

    def children_of(self, folder_id: str) -> list[FolderNode]:
        """Direct sub-folders of a folder ordered by name."""
        node = self._nodes.get(folder_id)
        if node is None:
            return []
        return self._sorted(node.children)

    def get_folder_by_id(self, folder_id: str) -> Optional[FolderNode]:
        return self._nodes.get(folder_id)

    # -------------------------------------------------------------------------
    # Path lookup
    # -------------------------------------------------------------------------

    def get_folder_by_path(self, path: str) -> Optional[FolderNode]:
        """Find the folder at a slash-delimited path.

        A single leading "/" is ignored. An empty path (or "/") addresses the
        root, which only resolves when the hierarchy has exactly one root.
        Segments are matched exactly and case-sensitively, one level at a time.

        Args:
            path: Folder path such as "Root/Sub/Child".

        Returns:
            The matching FolderNode, or None.
        """
        if path.startswith(PATH_SEPARATOR):
            path = path[1:]

        if not path:
            if len(self._root_ids) == 1:
                return self._nodes[next(iter(self._root_ids))]
            return None

        candidates: Iterable[str] = self._root_ids
        node: Optional[FolderNode] = None
        for segment in path.split(PATH_SEPARATOR):
            node = next((n for n in self._sorted(candidates) if n.name == segment), None)
            if node is None:
                return None
            candidates = node.children
        return node

    def get_path_for_folder(self, folder_id: str) -> Optional[str]:
        """Reconstruct a folder's path by walking up its parents.

        Returns:
            Path such as "Root/Sub/Child", or None if the id is unknown.
        """
        node = self._nodes.get(folder_id)
        if node is None:
            return None

        names: list[str] = []
        seen: set[str] = set()
        while node is not None and node.id not in seen:
            seen.add(node.id)
            names.append(node.name)
            node = self._nodes.get(node.parent_id) if node.parent_id else None

        return PATH_SEPARATOR.join(reversed(names))

    def get_display_path(self, folder_id: str) -> Optional[str]:
        """Folder path with a leading "/", as shown to users."""
        path = self.get_path_for_folder(folder_id)
        return None if path is None else f"{PATH_SEPARATOR}{path}"

    # -------------------------------------------------------------------------
    # Subtrees
    # -------------------------------------------------------------------------

    def filter_by_path(self, path: str) -> Optional["FolderHierarchy"]:
        """Copy the subtree rooted at a path into a new hierarchy.

        The copied root has its parent link cleared, so paths in the result
        are relative to it: the filtered root's name is the first segment.

        Returns:
            A new FolderHierarchy, or None if the path does not resolve.
        """
        target = self.get_folder_by_path(path)
        if target is None:
            return None

        nodes = [self._nodes[target.id].copy()]
        nodes[0].parent_id = None
        nodes.extend(self._nodes[i].copy() for i in self._descendant_ids(target.id))
        return FolderHierarchy.from_nodes(nodes)

    def _descendant_ids(self, folder_id: str) -> Iterator[str]:
        """Depth-first descendant ids, siblings ordered by (name, id)."""
        stack = list(reversed(self.children_of(folder_id)))
        seen: set[str] = {folder_id}
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            yield node.id
            stack.extend(reversed(self.children_of(node.id)))

    def descendants(self, folder_id: str) -> list[FolderNode]:
        """All folders below a folder, depth-first."""
        return [self._nodes[i] for i in self._descendant_ids(folder_id)]

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def _entry(self, node: FolderNode) -> dict[str, Any]:
        return {
            "id": node.id,
            "name": node.name,
            "path": self.get_display_path(node.id),
            "parent_id": node.parent_id if node.parent_id in self._nodes else None,
            "assets_count": node.assets_count,
            "folders_count": node.folders_count,
        }

    def list_children(self, path: str = ROOT_PATH, direct_only: bool = True) -> list[dict[str, Any]]:
        """List the folders below a path.

        Args:
            path: Folder path; "/" lists the root folders.
            direct_only: Only direct sub-folders when True, every descendant
                (depth-first) when False.

        Returns:
            Ordered list of folder entries with id, name and path.

        Raises:
            FolderNotFoundError: The path does not match a folder.
        """
        if is_root_path(path):
            tops = self.root_nodes()
        else:
            parent = self.get_folder_by_path(normalize_path(path))
            if parent is None:
                raise FolderNotFoundError(path)
            tops = self.children_of(parent.id)

        entries = []
        for node in tops:
            entries.append(self._entry(node))
            if not direct_only:
                entries.extend(self._entry(n) for n in self.descendants(node.id))
        return entries

    def direct_children(self, path: str = ROOT_PATH) -> list[dict[str, Any]]:
        """Direct sub-folders of a path."""
        return self.list_children(path, direct_only=True)

    def to_folder_list(self) -> list[dict[str, Any]]:
        """Every folder with its full path, ordered by path."""
        entries = [self._entry(node) for node in self._nodes.values()]
        return sorted(entries, key=lambda e: (e["path"], e["id"]))

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render_tree(self) -> str:
        """Render every root and its descendants as a text tree.

        Siblings are sorted by name independently at each level.
        """
        lines: list[str] = []
        for root in self.root_nodes():
            lines.append(root.name)
            self._render_children(root.id, "", lines, {root.id})
        return "\n".join(lines)

    def _render_children(
        self,
        folder_id: str,
        prefix: str,
        lines: list[str],
        seen: set[str],
    ) -> None:
        children = [c for c in self.children_of(folder_id) if c.id not in seen]
        for i, child in enumerate(children):
            is_last = i == len(children) - 1
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{child.name}")
            seen.add(child.id)
            child_prefix = prefix + ("    " if is_last else "│   ")
            self._render_children(child.id, child_prefix, lines, seen)

    def print_tree(self, console: Optional[Console] = None) -> None:
        """Print the rendered tree to the console."""
        console = console or Console()
        console.print(self.render_tree(), markup=False, highlight=False)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Canonical snapshot form: nodes sorted by id plus root ids."""
        return {
            "nodes": [self._nodes[i].to_dict() for i in sorted(self._nodes)],
            "root_ids": sorted(self._root_ids),
        }
