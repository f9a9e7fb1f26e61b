# src/install/library.py - v1
"""Apply built or cached artifacts to the target package library."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from envrestore.core.errors import BuildError
from envrestore.core.fsutil import copy_into_place

logger = logging.getLogger(__name__)


class LibraryInstaller:
    """Installs package trees into <library_root>/<package>."""

    def __init__(self, library_root: Path | str) -> None:
        self._root = Path(library_root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    async def apply(self, name: str, artifact: Path) -> Path:
        """Copy *artifact* to <library>/<name>, replacing any previous version.

        Raises:
            BuildError: The artifact could not be copied into the library.
        """
        dest = self._root / name
        try:
            await asyncio.to_thread(copy_into_place, artifact, dest, replace=True)
        except OSError as exc:
            raise BuildError(
                name, f"cannot install into library {self._root}: {exc}", retryable=False
            ) from exc
        logger.debug("Installed %s into %s", name, dest)
        return dest

    def installed(self) -> list[str]:
        """Names of packages present in the library."""
        if not self._root.is_dir():
            return []
        return sorted(
            p.name for p in self._root.iterdir()
            if p.is_dir() and (p / "DESCRIPTION").exists()
        )
