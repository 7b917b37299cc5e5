from __future__ import annotations

import json
from decimal import Decimal

import pytest

import main
from archive.errors import InvalidTimeRange, UnknownInstrument
from archive.models import Gap, GapReason, Tick, TickSeries, TimeRange, to_epoch_ms
from config import FeedConfig
from storage.tick_store import TickStore
from tests.helpers.fakes import utc


@pytest.fixture
def series(registry):
    start = utc(2020, 3, 12, 13)
    return TickSeries(
        instrument=registry.lookup("EURUSD"),
        time_range=TimeRange(start, start),
        ticks=[Tick(to_epoch_ms(start) + 218, Decimal("1.11812"), Decimal("1.11815"), 0.75, 1.12)],
        gaps={utc(2020, 3, 12, 14): Gap(utc(2020, 3, 12, 14), GapReason.NO_DATA)},
    )


def fake_download(result):
    calls = []

    async def _download(symbol, start, end, **kwargs):
        calls.append((symbol, start, end, kwargs))
        if isinstance(result, Exception):
            raise result
        return result

    return _download, calls


def test_parse_args():
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T15:00", "--concurrency", "2", "--fail-fast"])

    assert args.symbol == "EURUSD"
    assert args.start.hour == 13
    assert args.concurrency == 2
    assert args.fail_fast is True
    assert args.format == "json"


def test_parse_args_leaves_unset_options_to_config():
    args = main.parse_args(["EURUSD", "2020-03-12", "2020-03-13"])

    assert args.concurrency is None
    assert args.fail_fast is None
    assert args.db is None


@pytest.mark.asyncio
async def test_run_prints_json_lines(monkeypatch, capsys, series):
    download, calls = fake_download(series)
    monkeypatch.setattr(main, "download_ticks", download)
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T13:00", "--concurrency", "3"])

    code = await main.run(args, FeedConfig())

    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line)["ask"] for line in lines] == ["1.11815"]
    assert calls[0][3]["concurrency_limit"] == 3


@pytest.mark.asyncio
async def test_run_text_format(monkeypatch, capsys, series):
    monkeypatch.setattr(main, "download_ticks", fake_download(series)[0])
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T13:00", "--format", "text"])

    assert await main.run(args, FeedConfig()) == 0
    assert capsys.readouterr().out.startswith("2020-03-12 13:00:00.218")


@pytest.mark.asyncio
async def test_run_stores_series(monkeypatch, capsys, tmp_path, series):
    monkeypatch.setattr(main, "download_ticks", fake_download(series)[0])
    db_path = str(tmp_path / "out" / "ticks.db")
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T13:00", "--quiet", "--db", db_path])

    assert await main.run(args, FeedConfig()) == 0
    assert capsys.readouterr().out == ""
    with TickStore(db_path) as store:
        assert store.list_series()[0]["tick_count"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [UnknownInstrument("NOPE"), InvalidTimeRange("start after end")])
async def test_run_returns_error_code_on_feed_error(monkeypatch, error):
    monkeypatch.setattr(main, "download_ticks", fake_download(error)[0])
    args = main.parse_args(["NOPE", "2020-03-12T13:00", "2020-03-12T13:00"])

    assert await main.run(args, FeedConfig()) == 1


@pytest.mark.asyncio
async def test_save_uses_configured_db_path(monkeypatch, tmp_path, series):
    db_path = str(tmp_path / "configured.db")
    monkeypatch.setenv("DB_PATH", db_path)
    monkeypatch.setattr(main, "download_ticks", fake_download(series)[0])
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T13:00", "--quiet", "--save"])

    assert await main.run(args, FeedConfig.from_env()) == 0
    with TickStore(db_path) as store:
        assert store.list_series()[0]["symbol"] == "EURUSD"


@pytest.mark.asyncio
async def test_configured_db_path_unused_without_save(monkeypatch, tmp_path, series):
    config = FeedConfig()
    config.storage.db_path = str(tmp_path / "configured.db")
    monkeypatch.setattr(main, "download_ticks", fake_download(series)[0])
    args = main.parse_args(["EURUSD", "2020-03-12T13:00", "2020-03-12T13:00", "--quiet"])

    assert await main.run(args, config) == 0
    assert not (tmp_path / "configured.db").exists()
