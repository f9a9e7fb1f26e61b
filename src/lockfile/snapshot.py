# src/lockfile/snapshot.py - v1
"""Environment snapshot writer.

Writes the lockfile describing exactly what a restore installed. A snapshot
is only written for a restore in which every package reached cacheHit or
built; otherwise the record would claim a library state that does not exist.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from envrestore.core.errors import IncompleteRestoreError
from envrestore.core.models import (
    DependencyGraph,
    PackageSpec,
    RestoreReport,
    SourceKind,
)

logger = logging.getLogger(__name__)

_SOURCE_LABELS = {
    SourceKind.REGISTRY: "Repository",
    SourceKind.GIT: "git",
    SourceKind.LOCAL: "Local",
}


def serialize_snapshot(graph: DependencyGraph) -> str:
    """Serialize a graph to lockfile text. parse_lockfile() reverses this."""
    payload: dict[str, Any] = {}
    runtime: dict[str, Any] = {}
    if graph.runtime_version is not None:
        runtime["Version"] = graph.runtime_version
    runtime["Repositories"] = [
        {"Name": name, "URL": url} for name, url in sorted(graph.repositories.items())
    ]
    payload["R"] = runtime
    payload["Packages"] = {
        name: _package_entry(graph.packages[name]) for name in graph.names()
    }
    return json.dumps(payload, indent=2, sort_keys=False) + "\n"


def snapshot_graph(
    report: RestoreReport, graph: DependencyGraph | None = None
) -> DependencyGraph:
    """Build the graph of what was actually installed.

    Raises:
        IncompleteRestoreError: If any package in the report failed.
    """
    failed = [r.name for r in report.failed]
    if failed:
        raise IncompleteRestoreError(failed)
    return DependencyGraph(
        packages={r.name: r.package for r in report.results},
        runtime_version=graph.runtime_version if graph else None,
        repositories=dict(graph.repositories) if graph else {},
    )


def write_snapshot(
    report: RestoreReport,
    path: str | Path,
    graph: DependencyGraph | None = None,
) -> Path:
    """Write the snapshot lockfile for a fully successful restore.

    Args:
        report: Result of the restore.
        path: Destination lockfile path.
        graph: Source graph, for runtime version and repositories.

    Raises:
        IncompleteRestoreError: If any package failed. Nothing is written.
    """
    installed = snapshot_graph(report, graph)
    text = serialize_snapshot(installed)

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{out_path.name}.", suffix=".tmp", dir=str(out_path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, out_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Snapshot written: %s (%d packages)", out_path, len(installed))
    return out_path


def _package_entry(spec: PackageSpec) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "Package": spec.name,
        "Version": spec.version,
        "Source": _SOURCE_LABELS[spec.source],
    }
    if spec.repository is not None:
        entry["Repository"] = spec.repository
    if spec.remote_url is not None:
        entry["RemoteUrl"] = spec.remote_url
    if spec.remote_ref is not None:
        entry["RemoteRef"] = spec.remote_ref
    entry["Hash"] = spec.integrity_hash
    entry["Requirements"] = sorted(spec.depends_on)
    return entry
