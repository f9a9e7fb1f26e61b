# src/api/facade.py - v1
"""Public API facade: single entry point for restoring an environment.

Usage:
    from envrestore.api.facade import restore
    result = await restore("renv.lock", RestoreOptions(arch="amd64"))

Phases:
  1. Parse the lockfile and resolve the plan. Structural errors raise here,
     before anything is installed.
  2. Restore every package through the cache (skipped for dry runs).
  3. Write the snapshot lockfile if the restore fully succeeded.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import uuid
from pathlib import Path

from envrestore.api.models import RestoreOptions, RestoreResult
from envrestore.cache.base_cache_store import BaseCacheStore
from envrestore.cache.cache_factory import create_cache_store
from envrestore.config.settings import Settings
from envrestore.core.errors import IncompleteRestoreError
from envrestore.core.models import DependencyGraph, InstallPlan
from envrestore.install.builder import BaseBuilder, RToolchainBuilder
from envrestore.install.library import LibraryInstaller
from envrestore.install.restorer import Restorer
from envrestore.install.retry import RetryPolicy
from envrestore.lockfile.parser import read_lockfile
from envrestore.lockfile.snapshot import write_snapshot
from envrestore.logging.context import clear_context, set_phase, set_run_context
from envrestore.resolver.resolver import resolve
from envrestore.runtime.platforms import normalize_arch

logger = logging.getLogger(__name__)


def plan_restore(lockfile: str | Path) -> tuple[DependencyGraph, InstallPlan]:
    """Parse and resolve a lockfile without installing anything.

    Raises:
        ParseError, SchemaError, DuplicateNameError: Malformed lockfile.
        CycleError, DanglingReferenceError: Invalid dependency graph.
    """
    graph = read_lockfile(lockfile)
    return graph, resolve(graph)


async def restore(
    lockfile: str | Path,
    options: RestoreOptions | None = None,
    settings: Settings | None = None,
    cache_store: BaseCacheStore | None = None,
    builder: BaseBuilder | None = None,
    handle_signals: bool = False,
) -> RestoreResult:
    """Restore the environment described by *lockfile*.

    Args:
        lockfile: Path to the lockfile.
        options: Per-run overrides (arch, jobs, dry run, paths).
        settings: Global settings. Loaded from .env if None.
        cache_store: Cache backend. Built from settings if None and caching
            is enabled.
        builder: Build collaborator. An RToolchainBuilder if None.
        handle_signals: Route SIGINT/SIGTERM to Restorer.abort().

    Returns:
        RestoreResult; result.exit_code is non-zero iff a package failed.

    Raises:
        UnsupportedArchitectureError: Unknown target architecture.
        EnvRestoreError subclasses for malformed lockfiles or graphs.
    """
    options = options or RestoreOptions()
    settings = settings or Settings()
    arch = normalize_arch(options.arch or settings.default_arch)
    run_id = uuid.uuid4().hex[:12]
    set_run_context(run_id, arch)

    try:
        set_phase("resolve")
        graph, plan = plan_restore(lockfile)
        result = RestoreResult(run_id=run_id, arch=arch, graph=graph, plan=plan)
        if options.dry_run:
            logger.info("Dry run: %d packages planned", len(plan))
            return result

        set_phase("install")
        library_path = options.library_path or settings.library_path
        use_cache = settings.cache_enabled if options.use_cache is None else options.use_cache
        owns_cache = cache_store is None and use_cache
        if owns_cache:
            cache_store = create_cache_store(settings)
        owns_builder = builder is None
        if builder is None:
            builder = RToolchainBuilder(
                library_path=library_path,
                repositories=graph.repositories,
                default_repo_url=settings.cran_url,
                retry=RetryPolicy(
                    max_attempts=settings.build_max_attempts,
                    base_delay_s=settings.build_retry_delay_s,
                    backoff_factor=settings.build_backoff_factor,
                ),
                timeout_s=settings.build_timeout_s,
                r_executable=settings.r_executable,
                rscript_executable=settings.rscript_executable,
            )

        restorer = Restorer(
            builder=builder,
            library=LibraryInstaller(library_path),
            cache_store=cache_store if use_cache else None,
            jobs=options.jobs or settings.jobs,
        )
        try:
            with _abort_on_signals(restorer, enabled=handle_signals):
                result.report = await restorer.restore(plan, arch)
        finally:
            if owns_builder:
                builder.close()
            if owns_cache and cache_store is not None:
                cache_store.close()

        if options.snapshot_path is not None:
            set_phase("snapshot")
            try:
                result.snapshot_path = write_snapshot(
                    result.report, options.snapshot_path, graph=graph
                )
            except IncompleteRestoreError as exc:
                logger.warning("Snapshot not written: %s", exc)
        return result
    finally:
        clear_context()


@contextlib.contextmanager
def _abort_on_signals(restorer: Restorer, enabled: bool):
    if not enabled:
        yield
        return
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not supported outside the main thread or on Windows event loops.
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, restorer.abort)
            installed.append(sig)
    try:
        yield
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
