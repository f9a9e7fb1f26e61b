# src/install/builder.py - v1
"""Build/fetch collaborator: turn a locked package into an installed artifact.

The restorer treats a builder as an opaque, possibly slow, possibly
network-bound call. RToolchainBuilder delegates the actual download and
compilation to R tooling (remotes, R CMD INSTALL); the source backend is
chosen by an explicit match on PackageSpec.source.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from envrestore.core.errors import BuildError, UnsupportedArchitectureError
from envrestore.core.models import PackageSpec, SourceKind
from envrestore.install.retry import NO_RETRY, RetryPolicy, with_retry
from envrestore.runtime.platforms import host_arch, normalize_arch
from envrestore.runtime.rprofile import r_str

logger = logging.getLogger(__name__)

_OUTPUT_TAIL_LINES = 20


class BaseBuilder(ABC):
    """Interface consumed by the Restorer."""

    @abstractmethod
    async def build(self, spec: PackageSpec, arch: str) -> Path:
        """Produce the installed package tree for *spec* on *arch*.

        Raises:
            BuildError: The package could not be fetched or built.
        """

    def release(self, artifact: Path) -> None:
        """Drop a built artifact once it has been copied elsewhere. No-op by default."""

    def close(self) -> None:
        """Release temporary build state. No-op by default."""


class RToolchainBuilder(BaseBuilder):
    """Build R packages into private staging libraries.

    Args:
        library_path: Target library. Exposed to R as R_LIBS so packages
            installed earlier in the plan satisfy later builds.
        repositories: Repository name -> URL, from the lockfile.
        default_repo_url: Used when a package names no known repository.
        retry: Explicit retry policy for each package build.
        timeout_s: Wall-clock limit for one build attempt.
        staging_root: Parent for staging directories (default: system temp).
    """

    def __init__(
        self,
        library_path: Path,
        repositories: dict[str, str] | None = None,
        default_repo_url: str = "https://cran.rstudio.com/",
        retry: RetryPolicy = NO_RETRY,
        timeout_s: float = 1800.0,
        r_executable: str = "R",
        rscript_executable: str = "Rscript",
        staging_root: Path | None = None,
    ) -> None:
        self._library_path = Path(library_path)
        self._repositories = dict(repositories or {})
        self._default_repo_url = default_repo_url
        self._retry = retry
        self._timeout_s = timeout_s
        self._r = r_executable
        self._rscript = rscript_executable
        self._staging_root = Path(
            tempfile.mkdtemp(prefix="envrestore-build-", dir=staging_root)
        )

    async def build(self, spec: PackageSpec, arch: str) -> Path:
        self._check_arch(spec, arch)
        return await with_retry(
            lambda: self._build_once(spec),
            self._retry,
            what=f"build of {spec.name}@{spec.version}",
        )

    def release(self, artifact: Path) -> None:
        """Remove the staging library that holds *artifact*."""
        lib = Path(artifact).parent
        if lib.parent == self._staging_root:
            shutil.rmtree(lib, ignore_errors=True)

    def close(self) -> None:
        shutil.rmtree(self._staging_root, ignore_errors=True)

    def command_for(self, spec: PackageSpec, lib: Path) -> list[str]:
        """Command line that installs *spec* into *lib*."""
        match spec.source:
            case SourceKind.REGISTRY:
                repo = self._repositories.get(spec.repository or "", self._default_repo_url)
                expr = (
                    f"remotes::install_version({r_str(spec.name)}, "
                    f"version = {r_str(spec.version)}, repos = {r_str(repo)}, "
                    f"lib = {r_str(str(lib))}, dependencies = FALSE, "
                    f"upgrade = 'never', quiet = TRUE)"
                )
                return [self._rscript, "--vanilla", "-e", expr]
            case SourceKind.GIT:
                if not spec.remote_url:
                    raise BuildError(
                        spec.name, "git source has no remote URL", retryable=False
                    )
                ref = f"ref = {r_str(spec.remote_ref)}, " if spec.remote_ref else ""
                expr = (
                    f"remotes::install_git({r_str(spec.remote_url)}, {ref}"
                    f"lib = {r_str(str(lib))}, dependencies = FALSE, "
                    f"upgrade = 'never', quiet = TRUE)"
                )
                return [self._rscript, "--vanilla", "-e", expr]
            case SourceKind.LOCAL:
                if not spec.remote_url or not Path(spec.remote_url).exists():
                    raise BuildError(
                        spec.name,
                        f"local source {spec.remote_url!r} does not exist",
                        retryable=False,
                    )
                return [self._r, "CMD", "INSTALL", f"--library={lib}", spec.remote_url]

    async def _build_once(self, spec: PackageSpec) -> Path:
        lib = Path(tempfile.mkdtemp(prefix=f"{spec.name}-", dir=self._staging_root))
        try:
            return await self._run_install(spec, lib)
        except BaseException:
            shutil.rmtree(lib, ignore_errors=True)
            raise

    async def _run_install(self, spec: PackageSpec, lib: Path) -> Path:
        cmd = self.command_for(spec, lib)
        env = dict(os.environ)
        env["R_LIBS"] = os.pathsep.join(
            p for p in (str(self._library_path), env.get("R_LIBS", "")) if p
        )
        logger.info("Building %s@%s (%s)", spec.name, spec.version, spec.source.value)
        logger.debug("Command: %s", cmd)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env,
            )
        except FileNotFoundError as exc:
            raise BuildError(
                spec.name,
                f"executable not found: {cmd[0]}",
                hint="Install R and the 'remotes' package in the build image.",
                retryable=False,
            ) from exc

        try:
            output, _ = await asyncio.wait_for(proc.communicate(), self._timeout_s)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise BuildError(spec.name, f"timed out after {self._timeout_s:.0f}s") from exc

        text = output.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            tail = "\n".join(text.splitlines()[-_OUTPUT_TAIL_LINES:])
            raise BuildError(spec.name, f"exit status {proc.returncode}\n{tail}")

        artifact = lib / spec.name
        if not (artifact / "DESCRIPTION").exists():
            raise BuildError(
                spec.name, "build finished but produced no DESCRIPTION", retryable=False
            )
        return artifact

    def _check_arch(self, spec: PackageSpec, arch: str) -> None:
        try:
            target = normalize_arch(arch)
            host = host_arch()
        except UnsupportedArchitectureError as exc:
            raise BuildError(spec.name, str(exc), retryable=False) from exc
        if target != host:
            raise BuildError(
                spec.name,
                f"cannot build for {target} on a {host} host",
                hint="Run the restore inside the base image for the target architecture.",
                retryable=False,
            )
