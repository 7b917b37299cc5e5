from __future__ import annotations

import pytest

from archive.instruments import InstrumentRegistry
from core.addressing import SegmentAddressing
from core.fetcher import SegmentFetcher
from core.orchestrator import RangeOrchestrator
from core.retry import RetryPolicy
from tests.helpers.fakes import BASE_URL, RecordingSleep


@pytest.fixture
def registry() -> InstrumentRegistry:
    return InstrumentRegistry()


@pytest.fixture
def addressing(registry) -> SegmentAddressing:
    return SegmentAddressing(registry, base_url=BASE_URL)


@pytest.fixture
def instant_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(addressing, instant_sleep):
    def _make(transport, max_attempts: int = 3, timeout_sec: float = 5.0, **kwargs) -> RangeOrchestrator:
        fetcher = SegmentFetcher(
            transport,
            retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0.01, jitter=0.0),
            timeout_sec=timeout_sec,
            sleep=instant_sleep,
        )
        return RangeOrchestrator(addressing=addressing, fetcher=fetcher, **kwargs)
    return _make
