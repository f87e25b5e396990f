"""Backoff policy and error classification for rate-limited batches."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .errors import RateLimitedError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from megaverse.config.megaverse import ReconcileConfig

log = getLogger(__name__)

type Sleep = Callable[[float], Awaitable[object]]


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    initial: float = 0.2
    increment: float = 0.2
    maximum: float = 3.0
    max_retries: int = 10

    @classmethod
    def from_config(cls, config: ReconcileConfig) -> BackoffPolicy:
        return cls(
            initial=config.initial_backoff_seconds,
            increment=config.backoff_increment_seconds,
            maximum=config.max_backoff_seconds,
            max_retries=config.max_request_retries,
        )

    def next(self, backoff: float) -> float:
        """Grow ``backoff`` by one increment, capped at the ceiling."""

        return min(backoff + self.increment, self.maximum)


@dataclass(slots=True)
class BackoffClassifier:
    """Decide whether a failed batch waits and retries or aborts."""

    policy: BackoffPolicy = field(default_factory=BackoffPolicy)
    sleep: Sleep = asyncio.sleep

    async def handle(self, error: Exception, *, backoff: float, retry_count: int) -> None:
        """Wait ``backoff`` seconds for a retryable 429, otherwise re-raise ``error``."""

        if isinstance(error, RateLimitedError) and retry_count < self.policy.max_retries:
            log.warning(
                "Rate limited (retry %s/%s), backing off %.2fs",
                retry_count,
                self.policy.max_retries,
                backoff,
            )
            await self.sleep(backoff)
            return
        raise error
