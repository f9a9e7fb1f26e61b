# src/runtime/platforms.py - v1
"""Supported target architectures and their pinned base images."""

from __future__ import annotations

import platform
from dataclasses import dataclass

from envrestore.core.errors import UnsupportedArchitectureError


@dataclass(frozen=True)
class Platform:
    arch: str
    base_image: str
    aliases: tuple[str, ...] = ()


ARCHITECTURES: dict[str, Platform] = {
    "amd64": Platform(
        arch="amd64",
        base_image=(
            "rocker/r-ver:4.3@sha256:"
            "48f469c383d1e90fe09c208c6e2bb2f251bca6b72fefdb0ce2e483e4a292f974"
        ),
        aliases=("x86_64", "x64"),
    ),
    "arm64": Platform(
        arch="arm64",
        base_image=(
            "rocker/r-ver:4.3.0@sha256:"
            "9c1703e265fca5a17963a1b255b3b2ead6dfc6d65c57e4af2f31bec15554da86"
        ),
        aliases=("aarch64", "arm64v8"),
    ),
}

_ALIASES = {
    alias: p.arch for p in ARCHITECTURES.values() for alias in (p.arch, *p.aliases)
}


def normalize_arch(name: str) -> str:
    """Map an architecture name or alias to its canonical name.

    Raises:
        UnsupportedArchitectureError: Unknown architecture.
    """
    canonical = _ALIASES.get(name.strip().lower())
    if canonical is None:
        raise UnsupportedArchitectureError(
            f"Unsupported architecture {name!r}",
            hint=f"Choose one of: {', '.join(sorted(ARCHITECTURES))}",
        )
    return canonical


def platform_for(arch: str) -> Platform:
    return ARCHITECTURES[normalize_arch(arch)]


def host_arch() -> str:
    """Canonical architecture of the running machine."""
    return normalize_arch(platform.machine())
