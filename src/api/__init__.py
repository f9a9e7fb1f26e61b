"""Public API."""

from .facade import plan_restore, restore
from .models import RestoreOptions, RestoreResult

__all__ = ["RestoreOptions", "RestoreResult", "plan_restore", "restore"]
