"""envrestore: reproducible, multi-architecture R package library restores."""

from envrestore.version import __version__

__all__ = ["__version__"]
