# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides lockfile builders, parsed graphs and a stub build collaborator.
No R toolchain required: builds are simulated on the local filesystem.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from envrestore.core.errors import BuildError
from envrestore.core.models import DependencyGraph, PackageSpec, SourceKind
from envrestore.install.builder import BaseBuilder
from envrestore.lockfile.parser import parse_lockfile


# === HELPERS ===


def lock_entry(name: str, requirements: list[str] | None = None, **fields: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "Package": name,
        "Version": "1.0.0",
        "Source": "Repository",
        "Repository": "CRAN",
        "Hash": f"hash-{name.lower()}",
        "Requirements": list(requirements or []),
    }
    entry.update(fields)
    return entry


def lockfile_text(packages: dict[str, list[str]]) -> str:
    """Lockfile text for {name: requirements}."""
    return json.dumps({
        "R": {
            "Version": "4.3.0",
            "Repositories": [{"Name": "CRAN", "URL": "https://cran.rstudio.com"}],
        },
        "Packages": {name: lock_entry(name, reqs) for name, reqs in packages.items()},
    }, indent=2)


class StubBuilder(BaseBuilder):
    """Simulated build: writes <root>/<name>-<n>/<name>/DESCRIPTION.

    Records every call, released artifacts and the peak number of concurrent
    builds. Fails with a non-retryable BuildError for names listed in `fail`.
    """

    def __init__(self, root: Path, fail: set[str] | None = None, delay: float = 0.0) -> None:
        self.root = root
        self.fail = set(fail or ())
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0
        self.closed = False
        self.released: list[Path] = []

    async def build(self, spec: PackageSpec, arch: str) -> Path:
        self.calls.append(spec.name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if spec.name in self.fail:
                raise BuildError(spec.name, "compilation failed", retryable=False)
            out = self.root / f"{spec.name}-{len(self.calls)}" / spec.name
            out.mkdir(parents=True)
            (out / "DESCRIPTION").write_text(
                f"Package: {spec.name}\nVersion: {spec.version}\nBuilt: {arch}\n"
            )
            return out
        finally:
            self.active -= 1

    def release(self, artifact: Path) -> None:
        self.released.append(artifact)

    def close(self) -> None:
        self.closed = True


# === FIXTURES ===


@pytest.fixture
def sample_lockfile_text() -> str:
    """Diamond: app -> (http, json) -> R6, plus a standalone package."""
    return lockfile_text({
        "R6": ["R"],
        "http": ["R6", "utils"],
        "json": ["R6", "methods"],
        "app": ["http", "json"],
        "zzz": [],
    })


@pytest.fixture
def sample_graph(sample_lockfile_text: str) -> DependencyGraph:
    return parse_lockfile(sample_lockfile_text)


@pytest.fixture
def sample_spec() -> PackageSpec:
    return PackageSpec(
        name="R6",
        version="2.5.1",
        source=SourceKind.REGISTRY,
        integrity_hash="470851b6d5d0ac559e9d01bb352b4021",
        repository="CRAN",
    )


@pytest.fixture
def make_graph():
    """Factory: {name: requirements} -> DependencyGraph."""
    def _make(packages: dict[str, list[str]]) -> DependencyGraph:
        return parse_lockfile(lockfile_text(packages))
    return _make


@pytest.fixture
def stub_builder(tmp_path: Path) -> StubBuilder:
    return StubBuilder(tmp_path / "build")


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """A built package tree."""
    path = tmp_path / "artifact" / "R6"
    (path / "R").mkdir(parents=True)
    (path / "DESCRIPTION").write_text("Package: R6\nVersion: 2.5.1\n")
    (path / "R" / "R6.rdb").write_bytes(b"\x00\x01compiled")
    return path


@pytest.fixture
def make_lockfile_text():
    """Factory: {name: requirements} -> lockfile text."""
    return lockfile_text
