from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from ..errors import CollectorRejected, DeliveryError


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff for failed batches.

    Delay before retry ``attempt`` (0-based) is
    ``base_interval_ms * multiplier ** attempt``, optionally capped and
    jittered. With the defaults a batch that keeps failing waits
    1s, 2s, 4s and is dropped once ``max_attempts`` resends have failed.
    """

    max_attempts: int = 3
    base_interval_ms: int = 1_000
    multiplier: float = 2.0
    max_backoff_ms: Optional[int] = None
    jitter: bool = False

    def next_backoff_ms(self, attempt: int) -> int:
        delay = self.base_interval_ms * (self.multiplier ** max(0, attempt))
        if self.max_backoff_ms is not None:
            delay = min(delay, self.max_backoff_ms)
        if self.jitter:
            # 50-100% of the computed delay
            delay = delay * (0.5 + random.random() * 0.5)
        return int(delay)

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts


def describe_failure(exc: BaseException) -> str:
    """Short label for logs and metrics."""
    if isinstance(exc, CollectorRejected):
        return f"http_{exc.status_code}"
    if isinstance(exc, TimeoutError):
        return "timeout"
    if isinstance(exc, DeliveryError):
        return type(exc).__name__
    return f"{type(exc).__name__}: {exc}"
