"""Structured logging with per-run and per-package context."""

from .context import clear_context, get_context, set_package_context, set_run_context
from .logger import get_logger, setup_logging

__all__ = [
    "clear_context",
    "get_context",
    "get_logger",
    "set_package_context",
    "set_run_context",
    "setup_logging",
]
