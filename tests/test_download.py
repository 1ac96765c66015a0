"""Tests for the batched candle downloader."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from ma_cross_bot.core.types import FeedKey
from ma_cross_bot.exchange.csvfeed import read_candles_csv
from ma_cross_bot.pipeline.download import DownloadPeriod, Downloader, candles_count
from tests.helpers import START_MS, ScriptedExchange, make_history


def test_period_is_truncated_to_days() -> None:
    period = DownloadPeriod.last_days(2, now=datetime(2021, 7, 29, 15, 30, tzinfo=timezone.utc))

    truncated = period.truncated_to_days()

    assert truncated.start == datetime(2021, 7, 27, tzinfo=timezone.utc)
    assert truncated.end == datetime(2021, 7, 29, tzinfo=timezone.utc)


def test_candles_count() -> None:
    period = DownloadPeriod.from_ms(START_MS, START_MS + 2 * 86_400_000)

    count, interval = candles_count(period, "1h")

    assert count == 48
    assert interval.total_seconds() == 3600


@pytest.mark.asyncio
async def test_download_writes_every_bar_in_period(tmp_path: Path) -> None:
    history = make_history([100.0 + index for index in range(72)])
    exchange = ScriptedExchange(history={FeedKey("BTCUSDT", "1h"): history})
    output = tmp_path / "data" / "btc.csv"
    output.parent.mkdir()
    output.write_text("stale\n")

    written = await Downloader(exchange).download(
        "BTCUSDT", "1h", output, DownloadPeriod.from_ms(START_MS, START_MS + 2 * 86_400_000)
    )

    assert written == 48
    assert read_candles_csv(output) == history[:48]


@pytest.mark.asyncio
async def test_download_rejects_empty_period(tmp_path: Path) -> None:
    period = DownloadPeriod.from_ms(START_MS, START_MS + 3_600_000)

    with pytest.raises(ValueError):
        await Downloader(ScriptedExchange()).download("BTCUSDT", "1h", tmp_path / "out.csv", period)
