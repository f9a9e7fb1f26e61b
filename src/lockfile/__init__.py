"""Lockfile parsing and snapshot writing."""

from .parser import BASE_PACKAGES, parse_lockfile, read_lockfile
from .snapshot import serialize_snapshot, snapshot_graph, write_snapshot

__all__ = [
    "BASE_PACKAGES",
    "parse_lockfile",
    "read_lockfile",
    "serialize_snapshot",
    "snapshot_graph",
    "write_snapshot",
]
