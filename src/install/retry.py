# src/install/retry.py - v1
"""Bounded retry policy with exponential backoff for build/fetch calls.

The policy is an explicit value handed to the builder by its caller; the
builder never invents its own retry loop.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from envrestore.core.errors import BuildError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a build and how long to wait in between."""

    max_attempts: int = 3
    base_delay_s: float = 2.0
    backoff_factor: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given failed attempt (0-based)."""
        delay = self.base_delay_s * (self.backoff_factor ** attempt)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return delay


NO_RETRY = RetryPolicy(max_attempts=1, base_delay_s=0.0, jitter=False)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    what: str = "build",
) -> T:
    """Run *fn*, retrying retryable BuildErrors according to *policy*.

    Raises:
        BuildError: The last error once attempts are exhausted, or the first
            non-retryable one.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except BuildError as exc:
            attempt += 1
            if not exc.retryable or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt - 1)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                what, attempt, policy.max_attempts, delay, exc,
            )
            await asyncio.sleep(delay)
