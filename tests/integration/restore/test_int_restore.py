# tests/integration/restore/test_int_restore.py - v1
"""Integration tests for the restore facade: parse -> resolve -> install -> snapshot.

Uses the real cache stores and library installer on a temp directory; only
the build collaborator is simulated.
"""

from __future__ import annotations

import pytest

from envrestore.api.facade import plan_restore, restore
from envrestore.api.models import RestoreOptions
from envrestore.cache.json_store import JsonCacheStore
from envrestore.cache.sqlite_store import SqliteCacheStore
from envrestore.config.settings import Settings
from envrestore.core.errors import CycleError, UnsupportedArchitectureError
from envrestore.core.models import InstallOutcome
from envrestore.lockfile.parser import read_lockfile
from envrestore.logging.context import get_context


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        library_path=tmp_path / "lib",
        cache_root=tmp_path / "cache",
        default_arch="amd64",
    )


@pytest.fixture
def lockfile(tmp_path, sample_lockfile_text):
    path = tmp_path / "renv.lock"
    path.write_text(sample_lockfile_text, encoding="utf-8")
    return path


@pytest.fixture
def cache(tmp_path):
    return JsonCacheStore(cache_root=tmp_path / "cache")


class TestRestoreEndToEnd:
    @pytest.mark.asyncio
    async def test_full_restore_and_snapshot(self, lockfile, settings, cache, stub_builder, tmp_path):
        snapshot = tmp_path / "out" / "renv.lock"
        result = await restore(
            lockfile,
            RestoreOptions(arch="amd64", snapshot_path=snapshot),
            settings=settings, cache_store=cache, builder=stub_builder,
        )
        assert result.exit_code == 0
        assert result.report.success
        assert result.snapshot_path == snapshot
        assert read_lockfile(snapshot) == read_lockfile(lockfile)
        assert sorted(p.name for p in (tmp_path / "lib").iterdir()) == [
            "R6", "app", "http", "json", "zzz",
        ]
        assert not stub_builder.closed

    @pytest.mark.asyncio
    async def test_rerun_is_all_cache_hits(self, lockfile, settings, cache, stub_builder):
        options = RestoreOptions(arch="amd64")
        await restore(lockfile, options, settings=settings, cache_store=cache, builder=stub_builder)
        calls = len(stub_builder.calls)
        result = await restore(
            lockfile, options, settings=settings, cache_store=cache, builder=stub_builder,
        )
        assert len(stub_builder.calls) == calls
        assert result.report.by_outcome()[InstallOutcome.CACHE_HIT] == 5

    @pytest.mark.asyncio
    async def test_cache_built_from_settings(self, lockfile, settings, stub_builder, tmp_path):
        settings = settings.model_copy(update={"cache_backend": "sqlite"})
        await restore(lockfile, RestoreOptions(arch="amd64"), settings=settings, builder=stub_builder)
        store = SqliteCacheStore(cache_root=tmp_path / "cache")
        try:
            assert len(await store.list_entries()) == 5
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_no_cache_option(self, lockfile, settings, stub_builder, tmp_path):
        await restore(
            lockfile, RestoreOptions(arch="amd64", use_cache=False),
            settings=settings, builder=stub_builder,
        )
        assert not (tmp_path / "cache").exists()

    @pytest.mark.asyncio
    async def test_failure_writes_no_snapshot(self, lockfile, settings, cache, stub_builder, tmp_path):
        stub_builder.fail = {"http"}
        snapshot = tmp_path / "out" / "renv.lock"
        result = await restore(
            lockfile,
            RestoreOptions(arch="amd64", snapshot_path=snapshot),
            settings=settings, cache_store=cache, builder=stub_builder,
        )
        assert result.exit_code == 1
        assert result.snapshot_path is None
        assert not snapshot.exists()
        outcomes = {r.name: r.outcome for r in result.report.results}
        assert outcomes["app"] == InstallOutcome.FAILED
        assert outcomes["json"] == InstallOutcome.BUILT
        assert outcomes["zzz"] == InstallOutcome.BUILT

    @pytest.mark.asyncio
    async def test_dry_run_installs_nothing(self, lockfile, settings, stub_builder, tmp_path):
        result = await restore(
            lockfile, RestoreOptions(arch="arm64", dry_run=True),
            settings=settings, builder=stub_builder,
        )
        assert result.dry_run
        assert result.exit_code == 0
        assert result.plan.names == ["R6", "http", "json", "app", "zzz"]
        assert stub_builder.calls == []
        assert not (tmp_path / "lib").exists()

    @pytest.mark.asyncio
    async def test_arch_defaults_from_settings(self, lockfile, settings, cache, stub_builder):
        result = await restore(lockfile, settings=settings, cache_store=cache, builder=stub_builder)
        assert result.arch == "amd64"
        assert {e.key.arch for e in await cache.list_entries()} == {"amd64"}

    @pytest.mark.asyncio
    async def test_context_cleared(self, lockfile, settings, cache, stub_builder):
        await restore(lockfile, settings=settings, cache_store=cache, builder=stub_builder)
        assert get_context().run_id is None


class TestRestoreRejects:
    @pytest.mark.asyncio
    async def test_cycle_before_any_build(self, tmp_path, settings, stub_builder, make_lockfile_text):
        path = tmp_path / "cycle.lock"
        path.write_text(make_lockfile_text({"X": ["Y"], "Y": ["X"], "Z": []}))
        with pytest.raises(CycleError):
            await restore(path, RestoreOptions(arch="amd64"), settings=settings, builder=stub_builder)
        assert stub_builder.calls == []

    @pytest.mark.asyncio
    async def test_unknown_arch(self, lockfile, settings, stub_builder):
        with pytest.raises(UnsupportedArchitectureError):
            await restore(lockfile, RestoreOptions(arch="s390x"), settings=settings, builder=stub_builder)

    def test_plan_restore(self, lockfile):
        graph, plan = plan_restore(lockfile)
        assert len(graph) == len(plan) == 5
