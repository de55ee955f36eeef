"""Tests for folder command actions."""

import pytest

from conftest import FakeFolderService
from physna_cli.core.config import PhysnaConfig
from physna_cli.core.errors import (
    AmbiguousRootError,
    FolderNotEmptyError,
    FolderNotFoundError,
    RemoteError,
)
from physna_cli.orchestration.folder_actions import FolderActions
from physna_cli.orchestration.path_resolver import PathResolver, Strategy


@pytest.fixture
def actions(fake_service, hierarchy_cache):
    return FolderActions(fake_service, hierarchy_cache)


class TestQueries:
    """Read-only actions."""

    @pytest.mark.asyncio
    async def test_resolve_path(self, actions):
        assert await actions.resolve_path("tenant", "/Projects/Engine") == "a1"
        assert await actions.resolve_path("tenant", "/") is None

        with pytest.raises(FolderNotFoundError):
            await actions.resolve_path("tenant", "/Projects/Wheels")

    @pytest.mark.asyncio
    async def test_list_children(self, actions):
        entries = await actions.list_children("tenant", "/Projects")

        assert [(e["name"], e["path"]) for e in entries] == [
            ("Chassis", "/Projects/Chassis"),
            ("Engine", "/Projects/Engine"),
        ]

    @pytest.mark.asyncio
    async def test_list_children_recursive(self, actions):
        entries = await actions.list_children("tenant", "/", direct_only=False)

        assert [e["path"] for e in entries] == [
            "/Archive",
            "/Archive/2023",
            "/Projects",
            "/Projects/Chassis",
            "/Projects/Engine",
            "/Projects/Engine/Pistons",
            "/Projects/Engine/Valves",
        ]

    @pytest.mark.asyncio
    async def test_listing_uses_cache(self, actions, fake_service):
        await actions.list_children("tenant", "/")
        await actions.render_tree("tenant")
        await actions.resolve_path("tenant", "/Archive")

        assert fake_service.calls["list_folders"] == 1

    @pytest.mark.asyncio
    async def test_refresh_flag_refetches(self, actions, fake_service):
        await actions.list_children("tenant", "/")
        await actions.list_children("tenant", "/", refresh=True)

        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_render_subtree(self, actions):
        text = await actions.render_tree("tenant", "/Projects/Engine")

        assert text == "Engine\n├── Pistons\n└── Valves"

    @pytest.mark.asyncio
    async def test_render_whole_tree(self, actions):
        text = await actions.render_tree("tenant", "/")

        assert text.splitlines()[0] == "Archive"

    @pytest.mark.asyncio
    async def test_render_unknown_path(self, actions):
        with pytest.raises(FolderNotFoundError):
            await actions.render_tree("tenant", "/Nope")

    @pytest.mark.asyncio
    async def test_get_folder(self, actions):
        record = await actions.get_folder("tenant", "/Archive/2023")
        assert record.id == "b1"


class TestMutations:
    """Mutating actions and cache invalidation."""

    @pytest.mark.asyncio
    async def test_create_under_path(self, actions, fake_service):
        await actions.resolve_path("tenant", "/Projects")

        record = await actions.create_folder("tenant", "Wheels", parent_path="/Projects")

        assert record.parent_folder_id == "a"
        assert await actions.resolve_path("tenant", "/Projects/Wheels") == record.id
        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_create_at_top_level(self, actions):
        record = await actions.create_folder("tenant", "  Inbox  ", parent_path="/")

        assert record.name == "Inbox"
        assert record.parent_folder_id is None

    @pytest.mark.asyncio
    async def test_create_by_parent_id(self, actions):
        record = await actions.create_folder("tenant", "Bolts", parent_id="a1")
        assert record.parent_folder_id == "a1"

    @pytest.mark.asyncio
    async def test_create_validation(self, actions):
        with pytest.raises(ValueError):
            await actions.create_folder("tenant", "   ")
        with pytest.raises(ValueError):
            await actions.create_folder("tenant", "X", parent_path="/Projects", parent_id="a")

    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, actions, fake_service):
        with pytest.raises(FolderNotFoundError):
            await actions.create_folder("tenant", "X", parent_path="/Nope")
        assert fake_service.calls["create_folder"] == 0

    @pytest.mark.asyncio
    async def test_rename(self, actions):
        await actions.rename_folder("tenant", "/Projects/Chassis", "Body")

        assert await actions.resolve_path("tenant", "/Projects/Body") == "a2"
        with pytest.raises(FolderNotFoundError):
            await actions.resolve_path("tenant", "/Projects/Chassis")

    @pytest.mark.asyncio
    async def test_move(self, actions):
        await actions.move_folder("tenant", "/Projects/Engine", parent_path="/Archive")

        assert await actions.resolve_path("tenant", "/Archive/Engine/Valves") == "a12"

    @pytest.mark.asyncio
    async def test_move_to_top_level(self, actions):
        await actions.move_folder("tenant", "/Projects/Engine", parent_path="/")

        assert await actions.resolve_path("tenant", "/Engine") == "a1"

    @pytest.mark.asyncio
    async def test_move_into_itself(self, actions):
        with pytest.raises(ValueError):
            await actions.move_folder("tenant", "/Projects", parent_path="/Projects")

    @pytest.mark.asyncio
    async def test_delete(self, actions):
        deleted = await actions.delete_folder("tenant", "/Archive/2023")

        assert deleted == "b1"
        with pytest.raises(FolderNotFoundError):
            await actions.resolve_path("tenant", "/Archive/2023")

    @pytest.mark.asyncio
    async def test_delete_non_empty_needs_force(self, actions, fake_service):
        with pytest.raises(FolderNotEmptyError):
            await actions.delete_folder("tenant", "/Projects/Engine")

        await actions.delete_folder("tenant", "/Projects/Engine", force=True)
        assert "a1" not in fake_service.records

    @pytest.mark.parametrize("operation", ["rename", "move", "delete"])
    @pytest.mark.asyncio
    async def test_root_path_rejected(self, actions, fake_service, operation):
        with pytest.raises(AmbiguousRootError):
            if operation == "rename":
                await actions.rename_folder("tenant", "/", "X")
            elif operation == "move":
                await actions.move_folder("tenant", "/", parent_path="/Projects")
            else:
                await actions.delete_folder("tenant", "/")

        assert fake_service.calls[f"{operation}_folder"] == 0

    @pytest.mark.asyncio
    async def test_failed_mutation_keeps_cache(self, actions, fake_service, hierarchy_cache):
        await actions.resolve_path("tenant", "/Projects")
        fake_service.error = RemoteError("boom", status_code=500)

        with pytest.raises(RemoteError):
            await actions.create_folder("tenant", "X", parent_id="a")

        assert hierarchy_cache.load("tenant") is not None


class TestIncrementalActions:
    """Mutations also reset incremental level caches."""

    @pytest.mark.asyncio
    async def test_rename_clears_levels(self, fake_service, hierarchy_cache):
        resolver = PathResolver(fake_service, hierarchy_cache, strategy=Strategy.INCREMENTAL)
        actions = FolderActions(fake_service, hierarchy_cache, resolver)

        await actions.rename_folder("tenant", "/Archive", "Old")

        assert await actions.resolve_path("tenant", "/Old/2023") == "b1"


class TestCacheControl:
    """Explicit refresh and invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate(self, actions, fake_service, hierarchy_cache):
        await actions.resolve_path("tenant", "/Projects")

        assert actions.invalidate("tenant") is True
        assert hierarchy_cache.load("tenant") is None
        assert actions.invalidate("tenant") is False

        await actions.resolve_path("tenant", "/Projects")
        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_refresh(self, actions, fake_service):
        hierarchy = await actions.refresh("tenant")

        assert len(hierarchy) == 7
        assert fake_service.calls["list_folders"] == 1


class TestFromConfig:
    """Wiring from configuration."""

    def test_from_config(self, tmp_path):
        config = PhysnaConfig(
            access_token="token",
            cache_dir=tmp_path,
            cache_ttl_seconds=60,
            page_size=50,
            max_concurrent=3,
        )

        actions = FolderActions.from_config(config, strategy=Strategy.INCREMENTAL)

        assert actions.cache.cache_dir == tmp_path
        assert actions.cache.ttl_seconds == 60
        assert actions.resolver.strategy == Strategy.INCREMENTAL
