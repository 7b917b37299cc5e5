from __future__ import annotations

from decimal import Decimal

import pytest

from archive.models import Gap, GapReason, Tick, TickSeries, TimeRange, to_epoch_ms
from storage.tick_store import TickStore
from tests.helpers.fakes import utc


@pytest.fixture
def store(tmp_path):
    with TickStore(str(tmp_path / "ticks.db")) as s:
        yield s


@pytest.fixture
def series(registry):
    start = utc(2020, 3, 12, 13)
    base = to_epoch_ms(start)
    return TickSeries(
        instrument=registry.lookup("EURUSD"),
        time_range=TimeRange(start, utc(2020, 3, 12, 15)),
        ticks=[
            Tick(base + 218, Decimal("1.11812"), Decimal("1.11815"), 0.75, 1.1200000047683716),
            Tick(base + 3_600_010, Decimal("1.11900"), Decimal("1.11904"), 2.0, 3.5),
        ],
        gaps={
            utc(2020, 3, 12, 15): Gap(utc(2020, 3, 12, 15), GapReason.NO_DATA),
        },
    )


def test_save_and_load_round_trip(store, series):
    series_id = store.save_series(series)

    loaded = store.load_series(series_id)

    assert loaded == series
    assert str(loaded.ticks[1].bid) == "1.11900"


def test_failed_gap_keeps_error_text(store, series):
    hour = utc(2020, 3, 12, 14)
    series.gaps[hour] = Gap(hour, GapReason.FETCH_FAILED, "HTTP 503 after 4 attempts")

    loaded = store.load_series(store.save_series(series))

    assert loaded.failed_hours == [hour]
    assert loaded.gaps[hour].error == "HTTP 503 after 4 attempts"


def test_missing_series_loads_as_none(store):
    assert store.load_series(999) is None


def test_list_and_delete(store, series):
    first = store.save_series(series)
    second = store.save_series(series)

    listed = store.list_series("eurusd")
    assert [row["id"] for row in listed] == [first, second]
    assert listed[0]["tick_count"] == 2

    store.delete_series(first)

    assert [row["id"] for row in store.list_series()] == [second]
    assert store.conn.execute("SELECT COUNT(*) FROM ticks").fetchone()[0] == 2
