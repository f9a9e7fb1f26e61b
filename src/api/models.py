# src/api/models.py - v1
"""Public API models: RestoreOptions, RestoreResult."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from envrestore.core.models import DependencyGraph, InstallPlan, RestoreReport

EXIT_OK = 0
EXIT_PACKAGES_FAILED = 1
EXIT_INVALID_INPUT = 2


class RestoreOptions(BaseModel):
    """Per-run overrides. None falls back to Settings."""

    arch: str | None = None
    jobs: int | None = Field(default=None, ge=1)
    dry_run: bool = False
    library_path: Path | None = None
    snapshot_path: Path | None = None
    use_cache: bool | None = None


class RestoreResult(BaseModel):
    """Everything a restore produced."""

    run_id: str
    arch: str
    graph: DependencyGraph
    plan: InstallPlan
    report: RestoreReport | None = None
    snapshot_path: Path | None = None

    @property
    def dry_run(self) -> bool:
        return self.report is None

    @property
    def exit_code(self) -> int:
        if self.report is None or self.report.success:
            return EXIT_OK
        return EXIT_PACKAGES_FAILED
