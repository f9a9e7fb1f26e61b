# src/install/restorer.py - v1
"""Restorer: install an InstallPlan through the cache with bounded parallelism.

Scheduling:
  - A package is dispatched only after every dependency reached a terminal
    outcome. Ready packages are taken in ascending name order.
  - At most `jobs` packages are in flight at once.

Fail-forward:
  - A BuildError is recorded for that package only. An OSError while
    applying an artifact is recorded the same way.
  - A package with a failed dependency is recorded as failed with
    DependencyFailed naming the package whose build failed, and is never
    built; this cascades transitively.
  - Unrelated packages keep going; the restore always reports every package.

Abort:
  - abort() stops dispatching. In-flight packages finish so the cache is
    never left mid-write; everything not yet started is recorded as
    RestoreCancelled.
"""

from __future__ import annotations

import asyncio
import heapq
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from envrestore.cache.base_cache_store import BaseCacheStore
from envrestore.cache.keys import CacheKey
from envrestore.core.errors import (
    BuildError,
    DependencyFailed,
    EnvRestoreError,
    RestoreCancelled,
)
from envrestore.core.models import (
    InstallOutcome,
    InstallPlan,
    InstallResult,
    PackageSpec,
    RestoreReport,
)
from envrestore.install.builder import BaseBuilder
from envrestore.install.library import LibraryInstaller
from envrestore.logging.context import set_package_context

logger = logging.getLogger(__name__)

DEFAULT_JOBS = 4


class Restorer:
    """Drive installation of a plan.

    Args:
        builder: Build/fetch collaborator used on cache misses.
        library: Target library the artifacts are applied to.
        cache_store: Cache backend. None disables caching.
        jobs: Maximum number of packages installed concurrently.
    """

    def __init__(
        self,
        builder: BaseBuilder,
        library: LibraryInstaller,
        cache_store: BaseCacheStore | None = None,
        jobs: int = DEFAULT_JOBS,
    ) -> None:
        if jobs < 1:
            raise ValueError("jobs must be >= 1")
        self._builder = builder
        self._library = library
        self._cache = cache_store
        self._jobs = jobs
        self._abort = asyncio.Event()

    def abort(self) -> None:
        """Stop dispatching new packages; in-flight ones run to completion."""
        if not self._abort.is_set():
            logger.warning("Abort requested: finishing in-flight packages only")
        self._abort.set()

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    async def restore(self, plan: InstallPlan, arch: str) -> RestoreReport:
        """Install every package of *plan* for *arch* and report each outcome."""
        report = RestoreReport(arch=arch)
        specs = {p.name: p for p in plan.packages}
        deps = {
            name: sorted(d for d in spec.depends_on if d in specs)
            for name, spec in specs.items()
        }
        dependents: dict[str, list[str]] = {name: [] for name in specs}
        for name, ds in deps.items():
            for d in ds:
                dependents[d].append(name)
        remaining = {name: len(ds) for name, ds in deps.items()}
        ready = [name for name, n in remaining.items() if n == 0]
        heapq.heapify(ready)

        results: dict[str, InstallResult] = {}
        root_cause: dict[str, str] = {}
        running: dict[asyncio.Task[InstallResult], str] = {}

        def settle(name: str, result: InstallResult) -> None:
            results[name] = result
            for child in dependents[name]:
                remaining[child] -= 1
                if remaining[child] == 0:
                    heapq.heappush(ready, child)

        logger.info(
            "Restoring %d packages for %s with %d worker(s)", len(plan), arch, self._jobs
        )
        try:
            while ready or running:
                while ready and len(running) < self._jobs and not self._abort.is_set():
                    name = heapq.heappop(ready)
                    failed_dep = next(
                        (d for d in deps[name]
                         if results[d].outcome == InstallOutcome.FAILED),
                        None,
                    )
                    if failed_dep is not None:
                        cause = root_cause.get(failed_dep, failed_dep)
                        root_cause[name] = cause
                        settle(name, _failed(specs[name], DependencyFailed(name, cause)))
                        logger.warning("Skipping %s: dependency %s failed", name, cause)
                        continue
                    task = asyncio.create_task(
                        self._install_one(specs[name], arch), name=f"install:{name}"
                    )
                    running[task] = name

                if not running:
                    break

                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in sorted(done, key=lambda t: running[t]):
                    settle(running.pop(task), task.result())
        except BaseException:
            for task in running:
                task.cancel()
            raise

        unstarted = [name for name in plan.names if name not in results]
        for name in unstarted:
            results[name] = _failed(specs[name], RestoreCancelled(name))

        report.results = [results[name] for name in plan.names]
        report.cancelled = bool(unstarted)
        report.completed_at = datetime.now(timezone.utc)

        counts = report.by_outcome()
        logger.info(
            "Restore finished: %d cache hits, %d built, %d failed%s",
            counts[InstallOutcome.CACHE_HIT],
            counts[InstallOutcome.BUILT],
            counts[InstallOutcome.FAILED],
            " (cancelled)" if report.cancelled else "",
        )
        return report

    async def _install_one(self, spec: PackageSpec, arch: str) -> InstallResult:
        set_package_context(spec.name, "install")
        start_ns = time.monotonic_ns()
        built: list[Path] = []

        async def build() -> Path:
            artifact = await self._builder.build(spec, arch)
            built.append(artifact)
            return artifact

        try:
            if self._cache is not None:
                key = CacheKey.for_package(spec, arch)
                resolution = await self._cache.get_or_build(key, build)
                location = Path(resolution.entry.artifact_location)
                outcome = (
                    InstallOutcome.CACHE_HIT
                    if resolution.source == "hit"
                    else InstallOutcome.BUILT
                )
            else:
                location = await build()
                outcome = InstallOutcome.BUILT
            await self._library.apply(spec.name, location)
        except BuildError as exc:
            logger.error("Failed to install %s: %s", spec.name, exc)
            return _failed(spec, exc, _elapsed_ms(start_ns))
        except OSError as exc:
            error = BuildError(spec.name, f"artifact unavailable: {exc}", retryable=False)
            logger.error("Failed to install %s: %s", spec.name, error)
            return _failed(spec, error, _elapsed_ms(start_ns))
        finally:
            for artifact in built:
                self._builder.release(artifact)

        duration = _elapsed_ms(start_ns)
        logger.info("%s %s@%s in %dms", outcome.value, spec.name, spec.version, duration)
        return InstallResult(
            package=spec,
            outcome=outcome,
            duration_ms=duration,
            artifact_location=str(location),
        )


def _failed(spec: PackageSpec, error: EnvRestoreError, duration_ms: int = 0) -> InstallResult:
    return InstallResult(
        package=spec,
        outcome=InstallOutcome.FAILED,
        error=str(error),
        error_type=type(error).__name__,
        duration_ms=duration_ms,
    )


def _elapsed_ms(start_ns: int) -> int:
    return (time.monotonic_ns() - start_ns) // 1_000_000
