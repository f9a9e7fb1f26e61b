# tests/integration/cache/test_int_cache_stores.py - v1
"""Integration tests for cache backends: JSON + SQLite.

No external services required. Both backends must honour the same contract:
verified lookups, single-flight builds, and a shared cache across instances.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from envrestore.cache.cache_factory import create_cache_store
from envrestore.cache.keys import CacheKey
from envrestore.config.settings import Settings


@pytest.fixture(params=["json", "sqlite"])
def backend(request) -> str:
    return request.param


def _store(backend: str, root: Path):
    return create_cache_store(Settings(_env_file=None, cache_backend=backend, cache_root=root))


class TestCacheBackends:
    @pytest.mark.asyncio
    async def test_shared_between_instances(self, backend, tmp_path, sample_spec, artifact_dir):
        key = CacheKey.for_package(sample_spec, "amd64")
        first = _store(backend, tmp_path / "cache")
        try:
            await first.store(key, artifact_dir)
        finally:
            first.close()

        second = _store(backend, tmp_path / "cache")
        try:
            resolution = await second.get_or_build(key, _never_called)
            assert resolution.source == "hit"
        finally:
            second.close()

    @pytest.mark.asyncio
    async def test_many_packages_concurrently(self, backend, tmp_path, make_graph, artifact_dir):
        graph = make_graph({f"pkg{i}": [] for i in range(8)})
        store = _store(backend, tmp_path / "cache")
        builds: list[str] = []

        def build_for(name: str):
            async def build() -> Path:
                builds.append(name)
                await asyncio.sleep(0.005)
                return artifact_dir
            return build

        try:
            keys = [CacheKey.for_package(s, "arm64") for s in graph.packages.values()]
            await asyncio.gather(*(
                store.get_or_build(k, build_for(k.name)) for k in keys for _ in range(3)
            ))
            assert sorted(builds) == sorted(graph.packages)
            assert len(await store.list_entries()) == 8
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_corrupted_entry_rebuilt(self, backend, tmp_path, sample_spec, artifact_dir):
        key = CacheKey.for_package(sample_spec, "amd64")
        store = _store(backend, tmp_path / "cache")
        try:
            entry = await store.store(key, artifact_dir)
            (Path(entry.artifact_location) / "DESCRIPTION").write_text("corrupt")

            async def rebuild() -> Path:
                return artifact_dir

            resolution = await store.get_or_build(key, rebuild)
            assert resolution.source == "built"
            assert (Path(resolution.entry.artifact_location) / "DESCRIPTION").read_text().startswith(
                "Package: R6"
            )
        finally:
            store.close()


async def _never_called() -> Path:
    raise AssertionError("build must not run on a cache hit")
