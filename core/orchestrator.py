"""
Range Orchestrator - Turns (instrument, time range) into one TickSeries.

Every hour in range becomes a unit of work: addressing -> fetch -> decode.
Units run on a bounded pool of asyncio workers draining a chronological queue,
hand their SegmentResult back over a results queue, and are merged in hour order.
"""

from __future__ import annotations
import asyncio
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union, TYPE_CHECKING
import logging

from archive.errors import DecodeError, FatalFetchError, FeedError, TransientFetchError
from archive.instruments import InstrumentRegistry
from archive.models import (
    FetchStatus,
    Gap,
    GapReason,
    Instrument,
    OrderingAnomaly,
    SegmentKey,
    SegmentResult,
    SegmentState,
    Tick,
    TickSeries,
    TimeRange,
)
from archive.transport import AiohttpTransport
from core.addressing import SegmentAddressing
from core.decoder import SegmentDecoder
from core.fetcher import SegmentFetcher

if TYPE_CHECKING:
    from archive.transport import Transport
    from config import FeedConfig

logger = logging.getLogger(__name__)


class RangeOrchestrator:
    """Collects a gap-aware tick series for one instrument and range."""

    def __init__(
        self,
        addressing: SegmentAddressing,
        fetcher: SegmentFetcher,
        decoder: Optional[SegmentDecoder] = None,
        concurrency_limit: int = 4,
        fail_fast: bool = False,
    ):
        self.addressing = addressing
        self.fetcher = fetcher
        self.decoder = decoder or SegmentDecoder()
        self.concurrency_limit = concurrency_limit
        self.fail_fast = fail_fast

    async def collect(
        self,
        instrument: Union[Instrument, str],
        time_range: TimeRange,
        concurrency_limit: Optional[int] = None,
        fail_fast: Optional[bool] = None,
    ) -> TickSeries:
        """
        Fetch and decode every hour in range.

        Non fail-fast: failed hours become gaps, the call still returns.
        Fail-fast: the first failed hour cancels outstanding work and is raised.
        UnknownInstrument is raised before any request is made.
        """
        limit = self.concurrency_limit if concurrency_limit is None else concurrency_limit
        if limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {limit}")
        fail_fast = self.fail_fast if fail_fast is None else fail_fast

        symbol = instrument if isinstance(instrument, str) else instrument.symbol
        resolved = self.addressing.registry.lookup(symbol)

        keys = [SegmentKey(hour=hour, instrument=resolved) for hour in time_range.hours()]
        logger.info(
            f"[COLLECT] {resolved.symbol}: {len(keys)} hours "
            f"{keys[0].hour:%Y-%m-%d %H}h -> {keys[-1].hour:%Y-%m-%d %H}h "
            f"(concurrency={limit}, fail_fast={fail_fast})"
        )

        work: asyncio.Queue = asyncio.Queue()
        for key in keys:
            work.put_nowait(key)
        results: asyncio.Queue = asyncio.Queue()
        stop = asyncio.Event()
        failures: List[FeedError] = []

        workers = [
            asyncio.create_task(self._worker(work, results, stop, failures, fail_fast))
            for _ in range(min(limit, len(keys)))
        ]

        try:
            done, pending = await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            stop.set()
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        if pending:
            stop.set()
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        errors = [task.exception() for task in done if not task.cancelled()]
        if failures:
            logger.error(f"[COLLECT] {resolved.symbol}: fail-fast abort: {failures[0]}")
            raise failures[0]
        for error in errors:
            if error is not None:
                raise error

        segments = self._drain(results, keys)
        return self._assemble(resolved, time_range, segments)

    # ==================== Workers ====================

    async def _worker(
        self,
        work: asyncio.Queue,
        results: asyncio.Queue,
        stop: asyncio.Event,
        failures: List[FeedError],
        fail_fast: bool,
    ):
        while not stop.is_set():
            try:
                key = work.get_nowait()
            except asyncio.QueueEmpty:
                return

            result = await self.process(key)
            results.put_nowait(result)

            if fail_fast and result.error is not None:
                stop.set()
                failures.append(result.error)
                raise result.error

    async def process(self, key: SegmentKey) -> SegmentResult:
        """Run one unit: addressing -> fetch -> decode."""
        result = SegmentResult(key=key)
        url, params = self.addressing.resolve_key(key)

        self._transition(result, SegmentState.FETCHING)
        outcome = await self.fetcher.fetch(url)

        if outcome.status == FetchStatus.NO_DATA:
            result.gap = Gap(hour=key.hour, reason=GapReason.NO_DATA)
            self._transition(result, SegmentState.GAP)
            return result

        if outcome.status == FetchStatus.TRANSIENT_ERROR:
            self._transition(result, SegmentState.FAILED_TRANSIENT)
            result.error = TransientFetchError(
                f"{url}: {outcome.error} after {outcome.attempts} attempts", hour=key.hour, url=url
            )
            result.gap = Gap(hour=key.hour, reason=GapReason.FETCH_FAILED, error=str(result.error))
            self._transition(result, SegmentState.GAP)
            return result

        if outcome.status == FetchStatus.FATAL_ERROR:
            self._transition(result, SegmentState.FAILED_FATAL)
            result.error = FatalFetchError(f"{url}: {outcome.error}", hour=key.hour, url=url)
            result.gap = Gap(hour=key.hour, reason=GapReason.FETCH_FAILED, error=str(result.error))
            self._transition(result, SegmentState.GAP)
            return result

        self._transition(result, SegmentState.DECODING)
        try:
            ticks = self.decoder.decode(outcome.data or b"", params, key.hour)
        except DecodeError as e:
            e.url = url
            logger.error(f"[DECODE] {url}: {e}")
            self._transition(result, SegmentState.FAILED_FATAL)
            result.error = e
            result.gap = Gap(hour=key.hour, reason=GapReason.DECODE_FAILED, error=str(e))
            self._transition(result, SegmentState.GAP)
            return result

        if not ticks:
            result.gap = Gap(hour=key.hour, reason=GapReason.NO_DATA)
            self._transition(result, SegmentState.GAP)
            return result

        result.ticks = ticks
        self._transition(result, SegmentState.DONE)
        return result

    @staticmethod
    def _transition(result: SegmentResult, state: SegmentState):
        logger.debug(
            f"[COLLECT] {result.key.instrument.symbol} {result.key.hour:%Y-%m-%d %H}h: "
            f"{result.state.value} -> {state.value}"
        )
        result.state = state

    # ==================== Merge ====================

    @staticmethod
    def _drain(results: asyncio.Queue, keys: Sequence[SegmentKey]) -> List[SegmentResult]:
        """Pull every result off the queue and put them back in hour order."""
        by_hour = {}
        while not results.empty():
            result = results.get_nowait()
            by_hour[result.key.hour] = result
        return [by_hour[key.hour] for key in keys]

    def _assemble(
        self,
        instrument: Instrument,
        time_range: TimeRange,
        segments: List[SegmentResult],
    ) -> TickSeries:
        series = TickSeries(instrument=instrument, time_range=time_range)

        for segment in segments:
            if segment.gap is not None:
                series.gaps[segment.key.hour] = segment.gap
            series.ticks.extend(segment.ticks)

        series.anomalies = self.check_ordering(
            [(segment.key.hour, segment.ticks) for segment in segments]
        )
        for anomaly in series.anomalies:
            logger.warning(f"[COLLECT] {instrument.symbol}: ordering anomaly: {anomaly.describe()}")

        failed = len(series.failed_hours)
        logger.info(
            f"[COLLECT] {instrument.symbol}: {len(series)} ticks, "
            f"{len(series.gaps) - failed} empty hours, {failed} failed hours"
        )
        if failed:
            logger.warning(
                f"[COLLECT] {instrument.symbol}: missing hours due to errors: "
                f"{[f'{h:%Y-%m-%d %H}h' for h in series.failed_hours]}"
            )
        return series

    @staticmethod
    def check_ordering(segments: Sequence[Tuple[datetime, List[Tick]]]) -> List[OrderingAnomaly]:
        """One anomaly per tick whose timestamp is below its predecessor's."""
        anomalies: List[OrderingAnomaly] = []
        previous: Optional[Tick] = None
        previous_hour: Optional[datetime] = None
        index = 0

        for hour, ticks in segments:
            for tick in ticks:
                if previous is not None and tick.timestamp < previous.timestamp:
                    anomalies.append(OrderingAnomaly(
                        index=index,
                        previous_timestamp=previous.timestamp,
                        timestamp=tick.timestamp,
                        previous_hour=previous_hour,
                        hour=hour,
                    ))
                previous, previous_hour = tick, hour
                index += 1

        return anomalies


# Helper for one-shot downloads
async def download_ticks(
    symbol: str,
    start: datetime,
    end: datetime,
    concurrency_limit: Optional[int] = None,
    fail_fast: Optional[bool] = None,
    config: Optional["FeedConfig"] = None,
    transport: Optional["Transport"] = None,
    registry: Optional[InstrumentRegistry] = None,
) -> TickSeries:
    """
    Build the default pipeline from config and run a single collection.

    Usage:
        series = await download_ticks("EURUSD", datetime(2020, 3, 12, 13), datetime(2020, 3, 12, 15))
    """
    if config is None:
        from config import FeedConfig
        config = FeedConfig()

    owns_transport = transport is None
    if transport is None:
        transport = AiohttpTransport()

    orchestrator = RangeOrchestrator(
        addressing=SegmentAddressing(registry or InstrumentRegistry(), config.archive.base_url),
        fetcher=SegmentFetcher(
            transport,
            retry_policy=config.fetch.retry_policy(),
            timeout_sec=config.fetch.timeout_sec,
        ),
        concurrency_limit=config.collect.concurrency_limit,
        fail_fast=config.collect.fail_fast,
    )

    try:
        return await orchestrator.collect(symbol, TimeRange(start, end), concurrency_limit, fail_fast)
    finally:
        if owns_transport:
            await transport.close()
