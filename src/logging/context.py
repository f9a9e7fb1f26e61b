# src/logging/context.py - v1
"""Contextual logging support: attach run_id, arch, package and phase to records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging. asyncio tasks copy the current
# context on creation, so a package set inside a worker task stays local to it.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_arch: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "arch", default=None
)
_package: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "package", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    arch: str | None = None
    package: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        arch=_arch.get(),
        package=_package.get(),
        phase=_phase.get(),
    )


def set_run_context(run_id: str, arch: str) -> None:
    """Set run-level context (called once per restore)."""
    _run_id.set(run_id)
    _arch.set(arch)


def set_package_context(package: str, phase: str | None = None) -> None:
    """Set package-level context (called per package install)."""
    _package.set(package)
    _phase.set(phase)


def set_phase(phase: str | None) -> None:
    _phase.set(phase)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _arch.set(None)
    _package.set(None)
    _phase.set(None)
