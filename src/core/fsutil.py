# src/core/fsutil.py - v1
"""Filesystem helpers shared by the cache store and the library installer."""

from __future__ import annotations

import os
import shutil
import uuid
from pathlib import Path


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def copy_into_place(src: Path, dest: Path, *, replace: bool = False) -> Path:
    """Copy *src* (file or directory) to *dest* through a sibling temp path.

    The copy is renamed into place in one step, so readers never observe a
    partially copied artifact. With replace=False an existing *dest* is left
    untouched and returned as is.

    Raises:
        FileNotFoundError: *src* does not exist.
        OSError: The copy or rename failed.
    """
    if not src.exists():
        raise FileNotFoundError(src)
    dest.parent.mkdir(parents=True, exist_ok=True)
    if dest.exists() and not replace:
        return dest

    tmp = dest.parent / f".{dest.name}.{uuid.uuid4().hex}.tmp"
    try:
        if src.is_dir():
            shutil.copytree(src, tmp, symlinks=True)
        else:
            shutil.copy2(src, tmp)
        if replace and dest.exists():
            old = dest.parent / f".{dest.name}.{uuid.uuid4().hex}.old"
            os.replace(dest, old)
            os.replace(tmp, dest)
            remove_path(old)
        else:
            os.replace(tmp, dest)
    finally:
        if tmp.exists() or tmp.is_symlink():
            remove_path(tmp)
    return dest
