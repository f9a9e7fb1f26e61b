# src/main.py - v1
"""CLI entry point: restore, cache, sysdeps, rprofile commands.

Usage:
    envrestore restore --lockfile renv.lock --arch amd64 [options]
    envrestore cache list|clear
    envrestore sysdeps [--dry-run]
    envrestore rprofile [--lockfile renv.lock] [--output PATH ...]

Exit codes: 0 success, 1 a package failed, 2 invalid input or
configuration, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from envrestore.api.models import EXIT_INVALID_INPUT, EXIT_OK, RestoreResult
from envrestore.config.settings import ConfigurationError, Settings
from envrestore.core.errors import EnvRestoreError
from envrestore.version import __version__

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_INVALID_INPUT

    try:
        settings = Settings()
    except (ConfigurationError, ValidationError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    _setup_logging(settings, args.verbose)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except EnvRestoreError as exc:
        logger.error("[%s] %s", exc.code.value, exc)
        return EXIT_INVALID_INPUT


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="envrestore",
        description=f"envrestore v{__version__} - reproducible R library restores",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- restore ---
    p_restore = subparsers.add_parser(
        "restore", help="Restore the packages pinned in a lockfile",
    )
    p_restore.add_argument(
        "--lockfile", type=Path, required=True, help="Path to renv.lock",
    )
    p_restore.add_argument(
        "--arch", default=None,
        help="Target architecture: amd64, arm64 (default: ENVRESTORE_DEFAULT_ARCH)",
    )
    p_restore.add_argument(
        "--jobs", type=_positive_int, default=None,
        help="Packages installed concurrently (default: ENVRESTORE_JOBS)",
    )
    p_restore.add_argument(
        "--dry-run", action="store_true",
        help="Parse and resolve only, print the install plan",
    )
    p_restore.add_argument(
        "--library", type=Path, default=None,
        help="Target package library (default: ENVRESTORE_LIBRARY_PATH)",
    )
    p_restore.add_argument(
        "--snapshot", type=Path, default=None,
        help="Write a lockfile of the restored environment on full success",
    )
    p_restore.add_argument(
        "--report", type=Path, default=None,
        help="Write the per-package report as JSON",
    )
    p_restore.add_argument(
        "--no-cache", action="store_true",
        help="Build every package, bypassing the artifact cache",
    )
    p_restore.set_defaults(func=_cmd_restore)

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect or clear the artifact cache")
    cache_sub = p_cache.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("list", help="List cached artifacts").set_defaults(
        func=_cmd_cache_list,
    )
    cache_sub.add_parser("clear", help="Remove every cached artifact").set_defaults(
        func=_cmd_cache_clear,
    )

    # --- sysdeps ---
    p_sysdeps = subparsers.add_parser(
        "sysdeps", help="Install native libraries needed to build packages",
    )
    p_sysdeps.add_argument(
        "--dry-run", action="store_true", help="Print the commands only",
    )
    p_sysdeps.set_defaults(func=_cmd_sysdeps)

    # --- rprofile ---
    p_rprofile = subparsers.add_parser(
        "rprofile", help="Render the global R options profile",
    )
    p_rprofile.add_argument(
        "--lockfile", type=Path, default=None,
        help="Take repositories from this lockfile (default: ENVRESTORE_CRAN_URL)",
    )
    p_rprofile.add_argument(
        "--output", type=Path, action="append", default=None,
        help="Write to this path; repeatable (default: print to stdout)",
    )
    p_rprofile.set_defaults(func=_cmd_rprofile)

    return parser


async def _cmd_restore(args: argparse.Namespace, settings: Settings) -> int:
    """Execute a restore, or print the plan for --dry-run."""
    from envrestore.api.facade import restore
    from envrestore.api.models import RestoreOptions

    options = RestoreOptions(
        arch=args.arch,
        jobs=args.jobs,
        dry_run=args.dry_run,
        library_path=args.library,
        snapshot_path=args.snapshot,
        use_cache=False if args.no_cache else None,
    )
    result = await restore(
        args.lockfile, options, settings=settings, handle_signals=True,
    )

    if result.dry_run:
        _print_plan(result)
        return EXIT_OK

    _print_report(result)
    if args.report is not None and result.report is not None:
        args.report.parent.mkdir(parents=True, exist_ok=True)
        args.report.write_text(
            result.report.model_dump_json(indent=2), encoding="utf-8",
        )
        logger.info("Report written to %s", args.report)
    return result.exit_code


async def _cmd_cache_list(args: argparse.Namespace, settings: Settings) -> int:
    """List cached artifacts."""
    from envrestore.cache.cache_factory import create_cache_store

    store = create_cache_store(settings)
    try:
        entries = await store.list_entries()
    finally:
        store.close()

    for entry in sorted(entries, key=lambda e: (e.key.name, e.key.version, e.key.arch)):
        print(f"{entry.key}  {entry.key.digest[:12]}  {entry.built_at:%Y-%m-%d %H:%M}")
    print(f"\n{len(entries)} cached artifact(s) in {settings.cache_root}")
    return EXIT_OK


async def _cmd_cache_clear(args: argparse.Namespace, settings: Settings) -> int:
    """Remove every cached artifact."""
    from envrestore.cache.cache_factory import create_cache_store

    store = create_cache_store(settings)
    try:
        removed = await store.clear()
    finally:
        store.close()
    print(f"Removed {removed} cached artifact(s)")
    return EXIT_OK


async def _cmd_sysdeps(args: argparse.Namespace, settings: Settings) -> int:
    """Install native build dependencies."""
    from envrestore.runtime.system_deps import SystemDependencyInstaller

    installer = SystemDependencyInstaller(settings.system_packages_list)
    commands = installer.install(dry_run=args.dry_run)
    if args.dry_run:
        for cmd in commands:
            print(" ".join(cmd))
    return EXIT_OK


async def _cmd_rprofile(args: argparse.Namespace, settings: Settings) -> int:
    """Render Rprofile.site and print or write it."""
    from envrestore.lockfile.parser import read_lockfile
    from envrestore.runtime.rprofile import render_rprofile, write_rprofile

    repositories = {"CRAN": settings.cran_url}
    if args.lockfile is not None:
        repositories = read_lockfile(args.lockfile).repositories or repositories

    text = render_rprofile(
        repositories,
        download_method=settings.download_method,
        ncpus=settings.ncpus,
        pak_enabled=settings.pak_enabled,
    )
    if not args.output:
        print(text, end="")
        return EXIT_OK

    write_rprofile(text, args.output)
    return EXIT_OK


def _print_plan(result: RestoreResult) -> None:
    """Print the install plan in order, with each package's dependency level."""
    stage_of = {
        name: level
        for level, stage in enumerate(result.plan.stages, start=1)
        for name in stage
    }
    print(f"\nInstall plan for {result.arch} ({len(result.plan)} packages):")
    for i, spec in enumerate(result.plan.packages, start=1):
        print(
            f"  {i:>3}. {spec.name} {spec.version} ({spec.source.value})"
            f"  stage {stage_of.get(spec.name, '-')}"
        )


def _print_report(result: RestoreResult) -> None:
    """Print a human-readable summary of a RestoreReport."""
    report = result.report
    if report is None:
        return
    print(f"\nRestore {'complete' if report.success else 'FAILED'} ({result.arch}):")
    for r in report.results:
        line = f"  {r.outcome.value:<9} {r.name} {r.package.version}"
        if r.error:
            line += f"  {r.error.splitlines()[0]}"
        print(line)

    counts = report.by_outcome()
    print(
        "\n  "
        + "  ".join(f"{outcome.value}: {count}" for outcome, count in counts.items())
    )
    if report.cancelled:
        print("  Restore was cancelled before every package was dispatched.")
    if result.snapshot_path is not None:
        print(f"  Snapshot:  {result.snapshot_path}")


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return n


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from envrestore.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
