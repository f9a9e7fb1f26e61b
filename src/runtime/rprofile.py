# src/runtime/rprofile.py - v1
"""Global R options written to Rprofile.site."""

from __future__ import annotations

import logging
from pathlib import Path

from envrestore.core.errors import EnvironmentSetupError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_PATHS = (
    Path("/usr/local/lib/R/etc/Rprofile.site"),
    Path("/usr/lib/R/etc/Rprofile.site"),
)


def render_rprofile(
    repositories: dict[str, str],
    download_method: str = "libcurl",
    ncpus: int | None = None,
    pak_enabled: bool = True,
) -> str:
    """Render the options() call.

    ncpus=None defers to parallel::detectCores() on the target machine.
    """
    repos = ", ".join(
        f"{name} = {r_str(url)}" for name, url in sorted(repositories.items())
    )
    ncpus_expr = str(ncpus) if ncpus is not None else "parallel::detectCores()"
    options = [
        f"renv.config.pak.enabled = {'TRUE' if pak_enabled else 'FALSE'}",
        f"repos = c({repos})",
        f"download.file.method = {r_str(download_method)}",
        f"Ncpus = {ncpus_expr}",
    ]
    return f"options({', '.join(options)})\n"


def write_rprofile(text: str, paths: tuple[Path, ...] | list[Path] = DEFAULT_PROFILE_PATHS) -> list[Path]:
    """Write *text* to every path, creating parent directories.

    Raises:
        EnvironmentSetupError: A profile could not be written.
    """
    written: list[Path] = []
    for path in paths:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise EnvironmentSetupError(f"Cannot write {path}: {exc}") from exc
        written.append(path)
        logger.info("Wrote %s", path)
    return written


def r_str(value: str) -> str:
    """Quote a Python string as an R single-quoted string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"
