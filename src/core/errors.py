# src/core/errors.py - v1
"""Error taxonomy with stable, machine-readable codes.

Structural errors (parse, schema, graph) abort a run before any package is
installed. Per-package errors (build, dependency failure) are recorded in the
RestoreReport and never escape the Restorer. CacheWriteError is recoverable.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used in reports and CLI output."""

    PARSE = "E_PARSE"
    SCHEMA = "E_SCHEMA"
    DUPLICATE_NAME = "E_DUPLICATE_NAME"
    CYCLE = "E_CYCLE"
    DANGLING_REFERENCE = "E_DANGLING_REFERENCE"
    CACHE_WRITE = "E_CACHE_WRITE"
    BUILD = "E_BUILD"
    DEPENDENCY_FAILED = "E_DEPENDENCY_FAILED"
    CANCELLED = "E_CANCELLED"
    INCOMPLETE_RESTORE = "E_INCOMPLETE_RESTORE"
    ENVIRONMENT_SETUP = "E_ENVIRONMENT_SETUP"
    UNSUPPORTED_ARCH = "E_UNSUPPORTED_ARCH"
    CONFIGURATION = "E_CONFIGURATION"


class EnvRestoreError(Exception):
    """Base error carrying a stable code and an optional hint."""

    code: ErrorCode = ErrorCode.BUILD

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        msg = super().__str__()
        if self.hint:
            return f"{msg}\nHint: {self.hint}"
        return msg

    def to_dict(self) -> dict[str, str]:
        payload = {"code": self.code.value, "message": super().__str__()}
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


# === Input errors (fatal) ===


class ParseError(EnvRestoreError):
    """Lockfile text is not well-formed."""

    code = ErrorCode.PARSE


class SchemaError(EnvRestoreError):
    """A lockfile entry is missing a required field or has an invalid value."""

    code = ErrorCode.SCHEMA


class DuplicateNameError(EnvRestoreError):
    """The same package name appears twice in one lockfile."""

    code = ErrorCode.DUPLICATE_NAME

    def __init__(self, name: str) -> None:
        super().__init__(f"Package '{name}' is declared more than once")
        self.name = name


# === Graph errors (fatal) ===


class CycleError(EnvRestoreError):
    """The dependency graph contains a cycle."""

    code = ErrorCode.CYCLE

    def __init__(self, members: Iterable[str]) -> None:
        self.members: tuple[str, ...] = tuple(sorted(set(members)))
        super().__init__(
            f"Dependency cycle detected between: {', '.join(self.members)}"
        )


class DanglingReferenceError(EnvRestoreError):
    """A package depends on a name that is not in the graph."""

    code = ErrorCode.DANGLING_REFERENCE

    def __init__(self, package: str, missing: str) -> None:
        super().__init__(
            f"Package '{package}' depends on '{missing}' which is not in the lockfile",
            hint="Re-snapshot the project so every requirement is pinned.",
        )
        self.package = package
        self.missing = missing


# === Runtime errors ===


class CacheWriteError(EnvRestoreError):
    """The cache medium rejected a write. Recoverable by building uncached."""

    code = ErrorCode.CACHE_WRITE


class BuildError(EnvRestoreError):
    """The build/fetch collaborator failed for one package."""

    code = ErrorCode.BUILD

    def __init__(
        self,
        package: str,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(f"Build of '{package}' failed: {message}", hint=hint)
        self.package = package
        self.retryable = retryable


class DependencyFailed(EnvRestoreError):
    """A package was skipped because one of its dependencies failed."""

    code = ErrorCode.DEPENDENCY_FAILED

    def __init__(self, package: str, dependency: str) -> None:
        super().__init__(
            f"DependencyFailed({dependency}): '{package}' was not installed"
        )
        self.package = package
        self.dependency = dependency


class RestoreCancelled(EnvRestoreError):
    """The restore was aborted before this package was dispatched."""

    code = ErrorCode.CANCELLED

    def __init__(self, package: str) -> None:
        super().__init__(f"Restore cancelled before '{package}' was started")
        self.package = package


class IncompleteRestoreError(EnvRestoreError):
    """A snapshot was requested for a restore that had failures."""

    code = ErrorCode.INCOMPLETE_RESTORE

    def __init__(self, failed: Iterable[str]) -> None:
        self.failed: tuple[str, ...] = tuple(failed)
        super().__init__(
            f"Refusing to write snapshot: {len(self.failed)} package(s) failed "
            f"({', '.join(self.failed)})"
        )


class EnvironmentSetupError(EnvRestoreError):
    """System-level setup (native libraries, runtime profile) failed."""

    code = ErrorCode.ENVIRONMENT_SETUP


class UnsupportedArchitectureError(EnvRestoreError):
    """The requested architecture has no known base image."""

    code = ErrorCode.UNSUPPORTED_ARCH
