# src/cache/fingerprint.py - v1
"""Content digests for build artifacts (single files or directory trees)."""

from __future__ import annotations

import hashlib
from pathlib import Path

_CHUNK = 1024 * 1024


def artifact_digest(path: Path) -> str:
    """SHA-256 over an artifact.

    For a directory, the digest covers every regular file's relative POSIX
    path and contents, visited in sorted order, so it does not depend on
    directory listing order or timestamps.
    """
    h = hashlib.sha256()
    if path.is_file():
        _update_file(h, path)
        return h.hexdigest()

    for item in sorted(p for p in path.rglob("*") if p.is_file()):
        rel = item.relative_to(path).as_posix()
        h.update(rel.encode("utf-8"))
        h.update(b"\0")
        _update_file(h, item)
        h.update(b"\0")
    return h.hexdigest()


def _update_file(h: "hashlib._Hash", path: Path) -> None:
    with path.open("rb") as fh:
        while chunk := fh.read(_CHUNK):
            h.update(chunk)
