# src/runtime/system_deps.py - v1
"""OS package installer collaborator (apt-get).

Installs the native shared libraries R packages link against. Runs once,
before any restore; a failure here is fatal and is not retried.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from envrestore.core.errors import EnvironmentSetupError

logger = logging.getLogger(__name__)

APT_LISTS_DIR = Path("/var/lib/apt/lists")


class SystemDependencyInstaller:
    """Install native libraries with apt-get."""

    def __init__(
        self,
        packages: list[str],
        apt_get: str = "apt-get",
        lists_dir: Path | None = APT_LISTS_DIR,
    ) -> None:
        self._packages = list(dict.fromkeys(packages))
        self._apt_get = apt_get
        self._lists_dir = lists_dir

    def commands(self) -> list[list[str]]:
        """Commands install() runs, in order."""
        if not self._packages:
            return []
        return [
            [self._apt_get, "update", "-y"],
            [self._apt_get, "install", "-y", "--no-install-recommends", *self._packages],
        ]

    def install(self, dry_run: bool = False) -> list[list[str]]:
        """Run the install commands.

        Raises:
            EnvironmentSetupError: apt-get is missing or exited non-zero.
        """
        cmds = self.commands()
        if not cmds:
            logger.info("No system packages requested")
            return cmds
        if dry_run:
            for cmd in cmds:
                logger.info("Would run: %s", " ".join(cmd))
            return cmds

        for cmd in cmds:
            logger.info("Running: %s", " ".join(cmd[:3]))
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
            except FileNotFoundError as exc:
                raise EnvironmentSetupError(
                    f"{self._apt_get} not found",
                    hint="System dependencies can only be installed on Debian-based images.",
                ) from exc
            if proc.returncode != 0:
                tail = "\n".join(proc.stderr.splitlines()[-10:])
                raise EnvironmentSetupError(
                    f"'{' '.join(cmd[:2])}' exited with status {proc.returncode}\n{tail}"
                )

        if self._lists_dir is not None and self._lists_dir.is_dir():
            # Package lists are only needed during install.
            for child in self._lists_dir.iterdir():
                if child.is_dir():
                    shutil.rmtree(child, ignore_errors=True)
                else:
                    child.unlink(missing_ok=True)
        logger.info("Installed %d system packages", len(self._packages))
        return cmds
