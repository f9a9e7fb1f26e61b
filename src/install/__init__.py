"""Package installation: build collaborator, library applier, restorer."""

from .builder import BaseBuilder, RToolchainBuilder
from .library import LibraryInstaller
from .restorer import Restorer
from .retry import NO_RETRY, RetryPolicy, with_retry

__all__ = [
    "NO_RETRY",
    "BaseBuilder",
    "LibraryInstaller",
    "RToolchainBuilder",
    "Restorer",
    "RetryPolicy",
    "with_retry",
]
