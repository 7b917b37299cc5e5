"""
Segment Fetcher - Pulls one segment's compressed bytes through the transport.
Retries transient failures per RetryPolicy and always returns a FetchOutcome.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
import logging

from archive.errors import TransportError
from archive.models import FetchOutcome, FetchStatus
from archive.transport import Transport, TransportRequest, TransportResponse
from core.retry import RetryPolicy

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

# Statuses the archive returns while overloaded or rate limiting
TRANSIENT_STATUSES = {408, 425, 429}


@dataclass
class FetchStats:
    """Counters the caller may read after a run."""
    requests: int = 0
    retries: int = 0
    data: int = 0
    no_data: int = 0
    transient_failures: int = 0
    fatal_failures: int = 0


class SegmentFetcher:
    """Fetches one .bi5 segment with bounded retry."""

    def __init__(
        self,
        transport: Transport,
        retry_policy: Optional[RetryPolicy] = None,
        timeout_sec: float = 30.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_sec = timeout_sec
        self._sleep = sleep
        self.stats = FetchStats()

    async def fetch(self, url: str) -> FetchOutcome:
        """
        Fetch a segment. Returns DATA, NO_DATA, FATAL_ERROR,
        or the last TRANSIENT_ERROR once retries are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            outcome = await self._attempt(url)

            decision = self.retry_policy.decide(attempt, outcome.status)
            if not decision.retry:
                break

            self.stats.retries += 1
            logger.warning(
                f"[FETCH] {url}: {outcome.error} "
                f"(attempt {attempt}/{self.retry_policy.max_attempts}). "
                f"Retrying in {decision.delay:.2f}s..."
            )
            await self._sleep(decision.delay)

        self._count(outcome)
        if outcome.status == FetchStatus.TRANSIENT_ERROR:
            logger.error(f"[FETCH] {url}: giving up after {attempt} attempts: {outcome.error}")
        elif outcome.status == FetchStatus.FATAL_ERROR:
            logger.error(f"[FETCH] {url}: fatal: {outcome.error}")

        return FetchOutcome(
            status=outcome.status,
            data=outcome.data,
            error=outcome.error,
            status_code=outcome.status_code,
            attempts=attempt,
        )

    async def _attempt(self, url: str) -> FetchOutcome:
        self.stats.requests += 1
        try:
            response = await asyncio.wait_for(
                self.transport.send(TransportRequest(url=url)),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            return FetchOutcome.transient(f"timed out after {self.timeout_sec}s")
        except TransportError as e:
            return FetchOutcome.transient(str(e))

        return self.classify(response)

    @staticmethod
    def classify(response: TransportResponse) -> FetchOutcome:
        """Map an HTTP status + body to an outcome kind."""
        status = response.status
        if response.ok:
            if not response.body:
                return FetchOutcome.no_data(status_code=status)
            return FetchOutcome.of_data(response.body, status_code=status)

        # 404 means the hour had no ticks (or is outside the instrument's history)
        if status == 404:
            return FetchOutcome.no_data(status_code=status)

        if status in TRANSIENT_STATUSES or status >= 500:
            return FetchOutcome.transient(f"HTTP {status}", status_code=status)

        return FetchOutcome.fatal(f"HTTP {status}", status_code=status)

    def _count(self, outcome: FetchOutcome):
        if outcome.status == FetchStatus.DATA:
            self.stats.data += 1
        elif outcome.status == FetchStatus.NO_DATA:
            self.stats.no_data += 1
        elif outcome.status == FetchStatus.TRANSIENT_ERROR:
            self.stats.transient_failures += 1
        else:
            self.stats.fatal_failures += 1
