# src/core/models.py - v1
"""Shared Pydantic domain models used across modules.

The DependencyGraph is an explicit value passed from the parser to the
resolver and the restorer. No module keeps a process-wide package registry.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field


# === PACKAGES ===


class SourceKind(StrEnum):
    """Where a locked package comes from."""

    REGISTRY = "registry"
    GIT = "git"
    LOCAL = "local"


class PackageSpec(BaseModel):
    """One locked package. Immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    source: SourceKind
    integrity_hash: str
    depends_on: frozenset[str] = frozenset()

    # --- Provenance consumed by the build collaborator ---
    repository: str | None = None
    remote_url: str | None = None
    remote_ref: str | None = None


class DependencyGraph(BaseModel):
    """Locked packages keyed by name, plus runtime metadata from the lockfile."""

    packages: dict[str, PackageSpec] = Field(default_factory=dict)
    runtime_version: str | None = None
    repositories: dict[str, str] = Field(default_factory=dict)

    def names(self) -> list[str]:
        return sorted(self.packages)

    def get(self, name: str) -> PackageSpec | None:
        return self.packages.get(name)

    def to_networkx(self) -> nx.DiGraph:
        """Directed graph with an edge dependency -> dependent.

        Dependencies missing from the graph are left out; the resolver
        reports them before this graph is used.
        """
        g = nx.DiGraph()
        for name in self.names():
            g.add_node(name)
        for name in self.names():
            for dep in sorted(self.packages[name].depends_on):
                if dep in self.packages:
                    g.add_edge(dep, name)
        return g

    def dependents_of(self, name: str) -> set[str]:
        """All packages that depend on *name*, directly or transitively."""
        g = self.to_networkx()
        if name not in g:
            return set()
        return set(nx.descendants(g, name))

    def __len__(self) -> int:
        return len(self.packages)


# === PLAN ===


class InstallPlan(BaseModel):
    """Installation order: every dependency precedes its dependents.

    stages groups packages into dependency levels; packages within a stage
    have no dependency relationship with each other.
    """

    packages: list[PackageSpec] = Field(default_factory=list)
    stages: list[list[str]] = Field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.packages]

    def __len__(self) -> int:
        return len(self.packages)


# === RESULTS ===


class InstallOutcome(StrEnum):
    CACHE_HIT = "cacheHit"
    BUILT = "built"
    FAILED = "failed"


class InstallResult(BaseModel):
    """Outcome of installing a single package."""

    package: PackageSpec
    outcome: InstallOutcome
    error: str | None = None
    error_type: str | None = None
    duration_ms: int = 0
    artifact_location: str | None = None

    @property
    def name(self) -> str:
        return self.package.name


class RestoreReport(BaseModel):
    """Aggregated results of one restore, in plan order."""

    arch: str
    results: list[InstallResult] = Field(default_factory=list)
    # True when an abort left packages unstarted; each is also a failed result.
    cancelled: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def success(self) -> bool:
        return all(r.outcome != InstallOutcome.FAILED for r in self.results)

    @property
    def failed(self) -> list[InstallResult]:
        return [r for r in self.results if r.outcome == InstallOutcome.FAILED]

    def by_outcome(self) -> dict[InstallOutcome, int]:
        counts = {outcome: 0 for outcome in InstallOutcome}
        for r in self.results:
            counts[r.outcome] += 1
        return counts

    def result_for(self, name: str) -> InstallResult | None:
        for r in self.results:
            if r.name == name:
                return r
        return None
