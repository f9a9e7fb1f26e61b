# tests/unit/install/test_unit_restorer.py - v1
"""Tests for install/restorer.py - scheduling, fail-forward and abort."""

from __future__ import annotations

import pytest

from envrestore.cache.json_store import JsonCacheStore
from envrestore.core.models import InstallOutcome
from envrestore.install.library import LibraryInstaller
from envrestore.install.restorer import Restorer
from envrestore.resolver.resolver import resolve


@pytest.fixture
def library(tmp_path):
    return LibraryInstaller(tmp_path / "lib")


@pytest.fixture
def cache(tmp_path):
    return JsonCacheStore(cache_root=tmp_path / "cache")


def _outcomes(report) -> dict[str, InstallOutcome]:
    return {r.name: r.outcome for r in report.results}


class TestRestore:
    @pytest.mark.asyncio
    async def test_all_built(self, sample_graph, stub_builder, library, cache):
        restorer = Restorer(stub_builder, library, cache_store=cache, jobs=4)
        report = await restorer.restore(resolve(sample_graph), "amd64")
        assert report.success
        assert set(_outcomes(report).values()) == {InstallOutcome.BUILT}
        assert library.installed() == sorted(sample_graph.packages)
        assert report.completed_at is not None

    @pytest.mark.asyncio
    async def test_results_in_plan_order(self, sample_graph, stub_builder, library):
        plan = resolve(sample_graph)
        report = await Restorer(stub_builder, library, jobs=3).restore(plan, "amd64")
        assert [r.name for r in report.results] == plan.names

    @pytest.mark.asyncio
    async def test_single_worker_follows_plan(self, sample_graph, stub_builder, library):
        plan = resolve(sample_graph)
        await Restorer(stub_builder, library, jobs=1).restore(plan, "amd64")
        assert stub_builder.calls == plan.names

    @pytest.mark.asyncio
    async def test_dependencies_finish_first(self, sample_graph, stub_builder, library):
        await Restorer(stub_builder, library, jobs=8).restore(resolve(sample_graph), "amd64")
        calls = stub_builder.calls
        assert calls.index("R6") < calls.index("http") < calls.index("app")
        assert calls.index("json") < calls.index("app")

    @pytest.mark.asyncio
    async def test_jobs_bound(self, make_graph, stub_builder, library):
        graph = make_graph({f"p{i}": [] for i in range(6)})
        stub_builder.delay = 0.01
        await Restorer(stub_builder, library, jobs=2).restore(resolve(graph), "amd64")
        assert stub_builder.max_active == 2

    @pytest.mark.asyncio
    async def test_second_restore_hits_cache(self, sample_graph, stub_builder, library, cache):
        plan = resolve(sample_graph)
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        builds = len(stub_builder.calls)
        report = await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        assert len(stub_builder.calls) == builds
        assert set(_outcomes(report).values()) == {InstallOutcome.CACHE_HIT}

    @pytest.mark.asyncio
    async def test_other_arch_does_not_hit(self, sample_graph, stub_builder, library, cache):
        plan = resolve(sample_graph)
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        report = await Restorer(stub_builder, library, cache_store=cache).restore(plan, "arm64")
        assert set(_outcomes(report).values()) == {InstallOutcome.BUILT}

    @pytest.mark.asyncio
    async def test_without_cache(self, sample_graph, stub_builder, library):
        plan = resolve(sample_graph)
        await Restorer(stub_builder, library).restore(plan, "amd64")
        report = await Restorer(stub_builder, library).restore(plan, "amd64")
        assert set(_outcomes(report).values()) == {InstallOutcome.BUILT}
        assert len(stub_builder.calls) == 2 * len(plan)

    def test_invalid_jobs(self, stub_builder, library):
        with pytest.raises(ValueError):
            Restorer(stub_builder, library, jobs=0)


class TestFailForward:
    @pytest.mark.asyncio
    async def test_failed_dependency_skips_dependent(self, make_graph, stub_builder, library, cache):
        graph = make_graph({"A": [], "B": ["A"], "C": []})
        stub_builder.fail = {"A"}
        report = await Restorer(stub_builder, library, cache_store=cache).restore(
            resolve(graph), "amd64"
        )
        assert _outcomes(report) == {
            "A": InstallOutcome.FAILED,
            "B": InstallOutcome.FAILED,
            "C": InstallOutcome.BUILT,
        }
        b = report.result_for("B")
        assert b.error_type == "DependencyFailed"
        assert "DependencyFailed(A)" in b.error
        assert "B" not in stub_builder.calls
        assert report.result_for("A").error_type == "BuildError"
        assert not report.success

    @pytest.mark.asyncio
    async def test_cascade_names_failed_build(self, make_graph, stub_builder, library):
        graph = make_graph({"A": [], "B": ["A"], "D": ["B"]})
        stub_builder.fail = {"A"}
        report = await Restorer(stub_builder, library).restore(resolve(graph), "amd64")
        assert "DependencyFailed(A)" in report.result_for("D").error
        assert stub_builder.calls == ["A"]

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, make_graph, stub_builder, library, cache):
        plan = resolve(make_graph({"A": []}))
        stub_builder.fail = {"A"}
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        stub_builder.fail = set()
        report = await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        assert report.result_for("A").outcome == InstallOutcome.BUILT
        assert await cache.list_entries() != []

    @pytest.mark.asyncio
    async def test_failed_package_not_in_library(self, make_graph, stub_builder, library):
        graph = make_graph({"A": [], "C": []})
        stub_builder.fail = {"A"}
        await Restorer(stub_builder, library).restore(resolve(graph), "amd64")
        assert library.installed() == ["C"]


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_cancels_pending(self, make_graph, stub_builder, library):
        plan = resolve(make_graph({"a": [], "b": [], "c": []}))
        restorer = Restorer(stub_builder, library, jobs=1)
        build = stub_builder.build

        async def build_then_abort(spec, arch):
            restorer.abort()
            return await build(spec, arch)

        stub_builder.build = build_then_abort
        report = await restorer.restore(plan, "amd64")

        assert report.cancelled
        assert not report.success
        assert report.result_for("a").outcome == InstallOutcome.BUILT
        for name in ("b", "c"):
            assert report.result_for(name).error_type == "RestoreCancelled"
        assert stub_builder.calls == ["a"]
        assert restorer.aborted

    @pytest.mark.asyncio
    async def test_abort_before_start(self, sample_graph, stub_builder, library):
        restorer = Restorer(stub_builder, library)
        restorer.abort()
        report = await restorer.restore(resolve(sample_graph), "amd64")
        assert stub_builder.calls == []
        assert len(report.failed) == len(sample_graph)

    @pytest.mark.asyncio
    async def test_abort_during_last_build(self, make_graph, stub_builder, library):
        plan = resolve(make_graph({"a": []}))
        restorer = Restorer(stub_builder, library)
        build = stub_builder.build

        async def build_then_abort(spec, arch):
            restorer.abort()
            return await build(spec, arch)

        stub_builder.build = build_then_abort
        report = await restorer.restore(plan, "amd64")

        assert _outcomes(report) == {"a": InstallOutcome.BUILT}
        assert report.failed == []
        assert not report.cancelled
        assert report.success


class _UnreadableStore(JsonCacheStore):
    """Store whose lookup fails for selected package names."""

    def __init__(self, cache_root, unreadable: set[str]) -> None:
        super().__init__(cache_root=cache_root)
        self.unreadable = unreadable

    async def lookup(self, key):
        if key.name in self.unreadable:
            raise PermissionError(13, "Permission denied", str(key))
        return await super().lookup(key)


class TestContainment:
    @pytest.mark.asyncio
    async def test_lookup_error_is_a_miss(self, make_graph, stub_builder, library, tmp_path):
        store = _UnreadableStore(tmp_path / "cache", {"A"})
        graph = make_graph({"A": [], "B": ["A"], "C": []})
        report = await Restorer(stub_builder, library, cache_store=store).restore(
            resolve(graph), "amd64"
        )
        assert set(_outcomes(report).values()) == {InstallOutcome.BUILT}
        assert library.installed() == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_unreadable_artifact_fails_one_package(self, make_graph, stub_builder, library, monkeypatch):
        graph = make_graph({"A": [], "B": ["A"], "C": []})
        apply = library.apply

        async def apply_or_fail(name, artifact):
            if name == "A":
                raise PermissionError(13, "Permission denied", str(artifact))
            return await apply(name, artifact)

        monkeypatch.setattr(library, "apply", apply_or_fail)
        report = await Restorer(stub_builder, library).restore(resolve(graph), "amd64")

        assert _outcomes(report) == {
            "A": InstallOutcome.FAILED,
            "B": InstallOutcome.FAILED,
            "C": InstallOutcome.BUILT,
        }
        assert report.result_for("A").error_type == "BuildError"
        assert "Permission denied" in report.result_for("A").error

    @pytest.mark.asyncio
    async def test_build_output_released_after_install(self, make_graph, stub_builder, library, cache):
        plan = resolve(make_graph({"A": [], "B": []}))
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        assert sorted(p.name for p in stub_builder.released) == ["A", "B"]
        assert library.installed() == ["A", "B"]

    @pytest.mark.asyncio
    async def test_cache_hit_releases_nothing(self, make_graph, stub_builder, library, cache):
        plan = resolve(make_graph({"A": []}))
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        stub_builder.released.clear()
        await Restorer(stub_builder, library, cache_store=cache).restore(plan, "amd64")
        assert stub_builder.released == []
