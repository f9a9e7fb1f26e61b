"""Dependency graph validation and install ordering."""

from .resolver import check_acyclic, check_closed, resolve

__all__ = ["check_acyclic", "check_closed", "resolve"]
