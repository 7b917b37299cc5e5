from __future__ import annotations

import random

import pytest

from archive.models import FetchStatus
from core.retry import RetryDecision, RetryPolicy


@pytest.mark.parametrize(
    "status", [FetchStatus.DATA, FetchStatus.NO_DATA, FetchStatus.FATAL_ERROR]
)
def test_only_transient_errors_are_retried(status):
    policy = RetryPolicy(max_attempts=5)
    assert policy.decide(1, status) == RetryDecision(retry=False)


def test_stops_once_max_attempts_reached():
    policy = RetryPolicy(max_attempts=3, jitter=0.0)

    assert policy.decide(1, FetchStatus.TRANSIENT_ERROR).retry
    assert policy.decide(2, FetchStatus.TRANSIENT_ERROR).retry
    assert not policy.decide(3, FetchStatus.TRANSIENT_ERROR).retry


def test_backoff_doubles_and_is_capped():
    policy = RetryPolicy(max_attempts=10, base_delay=0.5, max_delay=4.0, jitter=0.0)

    delays = [policy.decide(n, FetchStatus.TRANSIENT_ERROR).delay for n in range(1, 7)]

    assert delays == [0.5, 1.0, 2.0, 4.0, 4.0, 4.0]


def test_jitter_stays_within_bounds():
    policy = RetryPolicy(base_delay=1.0, max_delay=100.0, jitter=0.25, rng=random.Random(7))

    for attempt in (1, 2, 3):
        base = 2 ** (attempt - 1)
        for _ in range(50):
            assert base <= policy.backoff(attempt) <= base * 1.25


def test_same_seed_gives_same_delays():
    a = RetryPolicy(max_attempts=5, rng=random.Random(42))
    b = RetryPolicy(max_attempts=5, rng=random.Random(42))

    assert [a.decide(n, FetchStatus.TRANSIENT_ERROR) for n in (1, 2, 3)] == [
        b.decide(n, FetchStatus.TRANSIENT_ERROR) for n in (1, 2, 3)
    ]


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"base_delay": -1.0}, {"jitter": 1.5}],
)
def test_rejects_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_jittered_delay_never_exceeds_cap():
    policy = RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=4.0, jitter=1.0, rng=random.Random(3))

    delays = [policy.backoff(attempt) for attempt in (3, 4, 5) for _ in range(50)]

    assert max(delays) <= 4.0
    assert policy.backoff(6) == 4.0
