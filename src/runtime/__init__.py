"""Runtime setup: architectures, system libraries, R options."""

from .platforms import ARCHITECTURES, Platform, host_arch, normalize_arch, platform_for
from .rprofile import render_rprofile, write_rprofile
from .system_deps import SystemDependencyInstaller

__all__ = [
    "ARCHITECTURES",
    "Platform",
    "SystemDependencyInstaller",
    "host_arch",
    "normalize_arch",
    "platform_for",
    "render_rprofile",
    "write_rprofile",
]
