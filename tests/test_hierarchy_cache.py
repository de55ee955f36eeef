"""Tests for the persistent hierarchy cache."""

import asyncio
import logging
import time
from unittest.mock import patch

import orjson
import pytest

from conftest import FakeFolderService
from physna_cli.cache.hierarchy_cache import HierarchyCache, tenant_cache_key
from physna_cli.core.errors import CacheError, RemoteError
from physna_cli.hierarchy.folder_hierarchy import FolderHierarchy


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestLoadSave:
    """Snapshot persistence."""

    def test_missing_entry(self, hierarchy_cache):
        assert hierarchy_cache.load("tenant") is None
        assert hierarchy_cache.entry_age("tenant") is None

    def test_save_then_load(self, hierarchy_cache, forest_records):
        hierarchy = FolderHierarchy.from_records(forest_records)

        path = hierarchy_cache.save("tenant", hierarchy)
        loaded = hierarchy_cache.load("tenant")

        assert path.exists()
        assert loaded is not None
        assert loaded.to_dict() == hierarchy.to_dict()
        assert loaded.get_folder_by_path("Projects/Engine/Pistons").id == "a11"

    def test_snapshot_format(self, hierarchy_cache, scenario_records):
        hierarchy_cache.save("tenant", FolderHierarchy.from_records(scenario_records))

        data = orjson.loads(hierarchy_cache.cache_file_path("tenant").read_bytes())

        assert data["version"] == 1
        assert data["tenant"] == "tenant"
        assert isinstance(data["created_at"], float)
        assert data["root_ids"] == ["1"]
        assert [n["id"] for n in data["nodes"]] == ["1", "2", "3"]

    def test_creates_directories(self, tmp_path, scenario_records):
        cache = HierarchyCache(tmp_path / "a" / "b" / "c")

        cache.save("tenant", FolderHierarchy.from_records(scenario_records))

        assert (tmp_path / "a" / "b" / "c" / "tenant.json").exists()

    def test_no_temp_files_left(self, hierarchy_cache, scenario_records):
        hierarchy = FolderHierarchy.from_records(scenario_records)

        hierarchy_cache.save("tenant", hierarchy)
        hierarchy_cache.save("tenant", hierarchy)

        files = [p.name for p in hierarchy_cache.cache_dir.iterdir()]
        assert files == ["tenant.json"]

    def test_save_failure_raises_cache_error(self, tmp_path, scenario_records):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        cache = HierarchyCache(blocker / "cache")

        with pytest.raises(CacheError):
            cache.save("tenant", FolderHierarchy.from_records(scenario_records))

    def test_tenants_are_separate(self, hierarchy_cache, scenario_records, forest_records):
        hierarchy_cache.save("one", FolderHierarchy.from_records(scenario_records))
        hierarchy_cache.save("two", FolderHierarchy.from_records(forest_records))

        assert len(hierarchy_cache.load("one")) == 3
        assert len(hierarchy_cache.load("two")) == 7

    def test_tenant_key_is_sanitized(self, hierarchy_cache):
        assert tenant_cache_key("acme/../prod") == "acme_.._prod"
        assert tenant_cache_key("..") == "_"
        assert hierarchy_cache.cache_file_path("a/b").parent == hierarchy_cache.cache_dir


class TestCorruption:
    """Unreadable snapshots behave like a cache miss."""

    @pytest.mark.parametrize(
        "content",
        [
            b"\x00\xff garbage \xfe",
            b"",
            b"[1, 2, 3]",
            b'{"version": 1, "tenant": "tenant"}',
        ],
    )
    def test_garbage_is_a_miss(self, hierarchy_cache, content, caplog):
        path = hierarchy_cache.cache_file_path("tenant")
        path.parent.mkdir(parents=True)
        path.write_bytes(content)

        with caplog.at_level(logging.WARNING):
            assert hierarchy_cache.load("tenant") is None
        assert "corrupt" in caplog.text

    def test_other_tenant_snapshot_is_ignored(self, hierarchy_cache, scenario_records):
        hierarchy_cache.save("other", FolderHierarchy.from_records(scenario_records))
        hierarchy_cache.cache_file_path("other").rename(hierarchy_cache.cache_file_path("tenant"))

        assert hierarchy_cache.load("tenant") is None

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_is_rebuilt(self, hierarchy_cache, fake_service):
        path = hierarchy_cache.cache_file_path("tenant")
        path.parent.mkdir(parents=True)
        path.write_bytes(b"not json")

        hierarchy = await hierarchy_cache.get_or_fetch("tenant", fake_service)

        assert len(hierarchy) == 7
        assert fake_service.calls["list_folders"] == 1
        assert hierarchy_cache.load("tenant") is not None


class TestGetOrFetch:
    """Fetch path behaviour."""

    @pytest.mark.asyncio
    async def test_second_call_is_a_cache_hit(self, hierarchy_cache, fake_service):
        first = await hierarchy_cache.get_or_fetch("tenant", fake_service)
        second = await hierarchy_cache.get_or_fetch("tenant", fake_service)

        assert fake_service.calls["list_folders"] == 1
        assert first.to_dict() == second.to_dict()

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, tmp_path, fake_service):
        clock = FakeClock()
        cache = HierarchyCache(tmp_path, ttl_seconds=1, clock=clock)

        await cache.get_or_fetch("tenant", fake_service)
        clock.advance(2)
        await cache.get_or_fetch("tenant", fake_service)

        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_expired_entry_with_real_clock(self, tmp_path, fake_service):
        cache = HierarchyCache(tmp_path, ttl_seconds=1)

        await cache.get_or_fetch("tenant", fake_service)
        time.sleep(2)
        await cache.get_or_fetch("tenant", fake_service)

        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_stale_entry_used_when_remote_fails(self, tmp_path, fake_service, caplog):
        clock = FakeClock()
        cache = HierarchyCache(tmp_path, ttl_seconds=1, clock=clock)
        await cache.get_or_fetch("tenant", fake_service)
        clock.advance(10)
        fake_service.error = RemoteError("connection refused")

        with caplog.at_level(logging.WARNING):
            hierarchy = await cache.get_or_fetch("tenant", fake_service)

        assert len(hierarchy) == 7
        assert "stale" in caplog.text
        assert cache.load("tenant") is None
        assert cache.load("tenant", allow_stale=True) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            RemoteError("unauthorized", status_code=401),
            RemoteError("forbidden", status_code=403),
            RemoteError("Malformed folder listing", malformed=True),
            RemoteError("bad request", status_code=400),
        ],
    )
    async def test_stale_entry_not_used_for_permanent_failures(self, tmp_path, fake_service, error):
        clock = FakeClock()
        cache = HierarchyCache(tmp_path, ttl_seconds=1, clock=clock)
        await cache.get_or_fetch("tenant", fake_service)
        clock.advance(10)
        fake_service.error = error

        with pytest.raises(RemoteError) as exc_info:
            await cache.get_or_fetch("tenant", fake_service)
        assert exc_info.value is error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [None, 429, 503])
    async def test_stale_entry_used_for_transient_failures(self, tmp_path, fake_service, status_code):
        clock = FakeClock()
        cache = HierarchyCache(tmp_path, ttl_seconds=1, clock=clock)
        await cache.get_or_fetch("tenant", fake_service)
        clock.advance(10)
        fake_service.error = RemoteError("unavailable", status_code=status_code)

        hierarchy = await cache.get_or_fetch("tenant", fake_service)

        assert len(hierarchy) == 7

    @pytest.mark.asyncio
    async def test_remote_error_without_cache_propagates(self, hierarchy_cache, fake_service):
        fake_service.error = RemoteError("unauthorized", status_code=401)

        with pytest.raises(RemoteError) as exc_info:
            await hierarchy_cache.get_or_fetch("tenant", fake_service)
        assert exc_info.value.is_auth_error

    @pytest.mark.asyncio
    async def test_save_failure_is_not_fatal(self, hierarchy_cache, fake_service, caplog):
        with patch.object(
            HierarchyCache, "save", side_effect=CacheError("disk full")
        ), caplog.at_level(logging.WARNING):
            hierarchy = await hierarchy_cache.get_or_fetch("tenant", fake_service)

        assert len(hierarchy) == 7
        assert "disk full" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_always_fetches(self, hierarchy_cache, fake_service):
        await hierarchy_cache.get_or_fetch("tenant", fake_service)
        await hierarchy_cache.refresh("tenant", fake_service)

        assert fake_service.calls["list_folders"] == 2

    @pytest.mark.asyncio
    async def test_refresh_sees_remote_changes(self, hierarchy_cache, fake_service):
        await hierarchy_cache.get_or_fetch("tenant", fake_service)
        await fake_service.create_folder("tenant", "New", "a")

        stale = hierarchy_cache.load("tenant")
        fresh = await hierarchy_cache.refresh("tenant", fake_service)

        assert stale.get_folder_by_path("Projects/New") is None
        assert fresh.get_folder_by_path("Projects/New") is not None
        assert hierarchy_cache.load("tenant").get_folder_by_path("Projects/New") is not None


class TestConcurrentAccess:
    """Writers replacing a snapshot while readers load it."""

    @pytest.mark.asyncio
    async def test_readers_never_see_partial_snapshots(
        self, hierarchy_cache, forest_records, scenario_records, caplog
    ):
        versions = [
            FolderHierarchy.from_records(forest_records),
            FolderHierarchy.from_records(scenario_records),
        ]
        expected = [v.to_dict() for v in versions]
        hierarchy_cache.save("tenant", versions[0])

        writers = [
            asyncio.to_thread(hierarchy_cache.save, "tenant", versions[i % 2]) for i in range(20)
        ]
        readers = [asyncio.to_thread(hierarchy_cache.load, "tenant") for _ in range(40)]

        with caplog.at_level(logging.WARNING):
            results = await asyncio.gather(*writers, *readers)

        loaded = results[len(writers):]
        assert all(h is not None and h.to_dict() in expected for h in loaded)
        assert "corrupt" not in caplog.text
        assert [p.name for p in hierarchy_cache.cache_dir.iterdir()] == ["tenant.json"]

    @pytest.mark.asyncio
    async def test_concurrent_fetches_leave_a_valid_snapshot(self, hierarchy_cache, fake_service):
        results = await asyncio.gather(
            *(hierarchy_cache.get_or_fetch("tenant", fake_service) for _ in range(8))
        )

        assert all(len(h) == 7 for h in results)
        assert len(hierarchy_cache.load("tenant")) == 7
        assert [p.name for p in hierarchy_cache.cache_dir.iterdir()] == ["tenant.json"]


class TestInvalidation:
    """Explicit invalidation and purge."""

    def test_invalidate(self, hierarchy_cache, scenario_records):
        hierarchy_cache.save("tenant", FolderHierarchy.from_records(scenario_records))

        assert hierarchy_cache.invalidate("tenant") is True
        assert hierarchy_cache.load("tenant") is None

    def test_invalidate_missing_is_not_an_error(self, hierarchy_cache):
        assert hierarchy_cache.invalidate("tenant") is False

    def test_purge(self, hierarchy_cache, scenario_records):
        hierarchy = FolderHierarchy.from_records(scenario_records)
        hierarchy_cache.save("one", hierarchy)
        hierarchy_cache.save("two", hierarchy)

        assert hierarchy_cache.purge() == 2
        assert hierarchy_cache.load("one") is None
        assert hierarchy_cache.purge() == 0

    def test_purge_without_directory(self, tmp_path):
        assert HierarchyCache(tmp_path / "missing").purge() == 0

    def test_entry_age(self, tmp_path, scenario_records):
        clock = FakeClock()
        cache = HierarchyCache(tmp_path, clock=clock)
        cache.save("tenant", FolderHierarchy.from_records(scenario_records))
        clock.advance(30)

        assert cache.entry_age("tenant") == pytest.approx(30)
