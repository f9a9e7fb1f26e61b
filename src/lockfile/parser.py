# src/lockfile/parser.py - v1
"""Lockfile parser: renv-style JSON manifest -> DependencyGraph.

Pure transformation. read_lockfile() is the only function touching disk.

Expected shape::

    {
      "R": {"Version": "4.3.0",
            "Repositories": [{"Name": "CRAN", "URL": "https://cran.rstudio.com"}]},
      "Packages": {
        "R6": {"Package": "R6", "Version": "2.5.1", "Source": "Repository",
               "Repository": "CRAN", "Hash": "470851b6...", "Requirements": ["R"]}
      }
    }
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from envrestore.core.errors import DuplicateNameError, ParseError, SchemaError
from envrestore.core.models import DependencyGraph, PackageSpec, SourceKind

logger = logging.getLogger(__name__)

# Packages shipped with the interpreter; never pinned in a lockfile.
BASE_PACKAGES: frozenset[str] = frozenset({
    "R", "base", "compiler", "datasets", "grDevices", "graphics", "grid",
    "methods", "parallel", "splines", "stats", "stats4", "tcltk", "tools",
    "translations", "utils",
})

_SOURCE_ALIASES: dict[str, SourceKind] = {
    "registry": SourceKind.REGISTRY,
    "repository": SourceKind.REGISTRY,
    "cran": SourceKind.REGISTRY,
    "bioconductor": SourceKind.REGISTRY,
    "git": SourceKind.GIT,
    "github": SourceKind.GIT,
    "gitlab": SourceKind.GIT,
    "bitbucket": SourceKind.GIT,
    "local": SourceKind.LOCAL,
}

_GIT_HOSTS = {
    "github": "https://github.com",
    "gitlab": "https://gitlab.com",
    "bitbucket": "https://bitbucket.org",
}

_VERSION_RE = re.compile(r"^\d+([.-]\d+)*$")


class _CheckedObject(dict):
    """JSON object that remembers keys seen more than once."""

    duplicates: list[str]


def _object_hook(pairs: list[tuple[str, Any]]) -> _CheckedObject:
    obj = _CheckedObject()
    obj.duplicates = []
    for key, value in pairs:
        if key in obj:
            obj.duplicates.append(key)
        obj[key] = value
    return obj


def parse_lockfile(
    raw: str, provided: frozenset[str] = BASE_PACKAGES
) -> DependencyGraph:
    """Parse lockfile text into a DependencyGraph.

    Args:
        raw: Lockfile contents.
        provided: Package names supplied by the runtime itself. Requirements
            on these are dropped instead of becoming graph edges.

    Raises:
        ParseError: Text is not a JSON object.
        SchemaError: A required field is missing or invalid.
        DuplicateNameError: A package name is declared twice.
    """
    if not raw.strip():
        raise ParseError("Lockfile is empty")
    try:
        payload = json.loads(raw, object_pairs_hook=_object_hook)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"Invalid lockfile JSON at line {exc.lineno}, column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(payload, dict):
        raise ParseError("Lockfile root must be a JSON object")
    if payload.duplicates:
        raise ParseError(f"Duplicate top-level key {payload.duplicates[0]!r}")

    runtime_version, repositories = _parse_runtime(payload.get("R"))

    packages_raw = payload.get("Packages")
    if not isinstance(packages_raw, dict):
        raise SchemaError("Lockfile is missing the 'Packages' object")
    if packages_raw.duplicates:
        raise DuplicateNameError(packages_raw.duplicates[0])

    # First pass: names, so duplicates win over key/name mismatches.
    names: dict[str, str] = {}
    for key, entry in packages_raw.items():
        if not isinstance(entry, dict):
            raise SchemaError(f"Package entry '{key}' must be an object")
        name = _required_str(entry, "Package", key)
        if name in names.values():
            raise DuplicateNameError(name)
        names[key] = name

    packages: dict[str, PackageSpec] = {}
    for key, entry in packages_raw.items():
        if names[key] != key:
            raise SchemaError(
                f"Package entry '{key}' declares Package '{names[key]}'"
            )
        spec = _parse_package(key, entry, provided)
        packages[spec.name] = spec

    graph = DependencyGraph(
        packages=packages,
        runtime_version=runtime_version,
        repositories=repositories,
    )
    logger.debug("Parsed lockfile: %d packages", len(graph))
    return graph


def read_lockfile(
    path: str | Path, provided: frozenset[str] = BASE_PACKAGES
) -> DependencyGraph:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ParseError(
            f"Lockfile does not exist: {lock_path}",
            hint="Snapshot the project to create a lockfile first.",
        ) from exc
    except UnicodeDecodeError as exc:
        raise ParseError(f"Lockfile is not valid UTF-8: {lock_path}: {exc}") from exc
    except OSError as exc:
        raise ParseError(f"Cannot read lockfile {lock_path}: {exc}") from exc
    return parse_lockfile(raw, provided=provided)


def _parse_runtime(section: Any) -> tuple[str | None, dict[str, str]]:
    if section is None:
        return None, {}
    if not isinstance(section, dict):
        raise SchemaError("Lockfile 'R' section must be an object")

    version = section.get("Version")
    if version is not None and not isinstance(version, str):
        raise SchemaError("Lockfile 'R.Version' must be a string")

    repositories: dict[str, str] = {}
    repos_raw = section.get("Repositories", [])
    if not isinstance(repos_raw, list):
        raise SchemaError("Lockfile 'R.Repositories' must be a list")
    for item in repos_raw:
        if not isinstance(item, dict):
            raise SchemaError("Repository entries must be objects")
        name = _required_str(item, "Name", "R.Repositories")
        repositories[name] = _required_str(item, "URL", f"repository '{name}'")
    return version, repositories


def _parse_package(
    key: str, entry: dict[str, Any], provided: frozenset[str]
) -> PackageSpec:
    version = _required_str(entry, "Version", key)
    if not _VERSION_RE.match(version):
        raise SchemaError(f"Package '{key}' has invalid version {version!r}")

    source_raw = _required_str(entry, "Source", key)
    source = _SOURCE_ALIASES.get(source_raw.lower())
    if source is None:
        raise SchemaError(f"Package '{key}' has unknown source {source_raw!r}")

    integrity_hash = _required_str(entry, "Hash", key)

    requirements = entry.get("Requirements", [])
    if not isinstance(requirements, list) or not all(
        isinstance(r, str) and r for r in requirements
    ):
        raise SchemaError(f"Package '{key}' has invalid 'Requirements'")

    return PackageSpec(
        name=key,
        version=version,
        source=source,
        integrity_hash=integrity_hash,
        depends_on=frozenset(r for r in requirements if r not in provided),
        repository=_optional_str(entry, "Repository", key),
        remote_url=_remote_url(key, entry, source_raw),
        remote_ref=_optional_str(entry, "RemoteSha", key)
        or _optional_str(entry, "RemoteRef", key),
    )


def _remote_url(key: str, entry: dict[str, Any], source_raw: str) -> str | None:
    url = _optional_str(entry, "RemoteUrl", key)
    if url:
        return url
    host = _GIT_HOSTS.get(source_raw.lower())
    user = _optional_str(entry, "RemoteUsername", key)
    repo = _optional_str(entry, "RemoteRepo", key)
    if host and user and repo:
        return f"{host}/{user}/{repo}"
    return None


def _required_str(payload: dict[str, Any], field: str, where: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise SchemaError(f"'{where}' is missing required field '{field}'")
    return value


def _optional_str(payload: dict[str, Any], field: str, where: str) -> str | None:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SchemaError(f"'{where}' field '{field}' must be a string")
    return value
