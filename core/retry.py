"""
Retry Policy - Decides whether a failed fetch attempt is retried, and after how long.
Pure function of (attempt, outcome kind); randomness comes from an injectable RNG.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import random

from archive.models import FetchStatus


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0


@dataclass
class RetryPolicy:
    """
    Exponential backoff with jitter, retrying transient errors only.

    delay(n) = min(base_delay * 2**(n-1) * (1 + U(0, jitter)), max_delay)
    where n is the attempt that just failed (1-based).
    """
    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.25
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be within [0, 1]")

    def decide(self, attempt: int, status: FetchStatus) -> RetryDecision:
        if status != FetchStatus.TRANSIENT_ERROR:
            return RetryDecision(retry=False)
        if attempt >= self.max_attempts:
            return RetryDecision(retry=False)
        return RetryDecision(retry=True, delay=self.backoff(attempt))

    def backoff(self, attempt: int) -> float:
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            delay *= 1 + self.rng.uniform(0, self.jitter)
        return min(delay, self.max_delay)
