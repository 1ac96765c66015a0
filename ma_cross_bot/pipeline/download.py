"""Offline candle downloader writing backtest CSV files."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ma_cross_bot.core.time_utils import datetime_to_ms, timeframe_to_seconds, utc_now
from ma_cross_bot.exchange.base import Exchange
from ma_cross_bot.exchange.csvfeed import write_candles_csv

BATCH_SIZE = 500


@dataclass(frozen=True, slots=True)
class DownloadPeriod:
    start: datetime
    end: datetime

    @classmethod
    def last_days(cls, days: int, now: datetime | None = None) -> "DownloadPeriod":
        now = now or utc_now()
        return cls(start=now - timedelta(days=days), end=now)

    @classmethod
    def from_ms(cls, start_ms: int, end_ms: int) -> "DownloadPeriod":
        return cls(
            start=datetime.fromtimestamp(start_ms / 1000.0, tz=timezone.utc),
            end=datetime.fromtimestamp(end_ms / 1000.0, tz=timezone.utc),
        )

    def truncated_to_days(self) -> "DownloadPeriod":
        """Align both bounds to UTC midnight."""

        def midnight(value: datetime) -> datetime:
            value = value.astimezone(timezone.utc)
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

        return DownloadPeriod(start=midnight(self.start), end=midnight(self.end))


def candles_count(period: DownloadPeriod, timeframe: str) -> tuple[int, timedelta]:
    interval = timedelta(seconds=timeframe_to_seconds(timeframe))
    return int((period.end - period.start) / interval), interval


class Downloader:
    def __init__(self, exchange: Exchange, logger: logging.Logger | None = None) -> None:
        self._exchange = exchange
        self._logger = logger or logging.getLogger(__name__)

    async def download(
        self,
        symbol: str,
        timeframe: str,
        output: Path,
        period: DownloadPeriod | None = None,
    ) -> int:
        """Fetch the period in batches of ``BATCH_SIZE`` bars and write them to ``output``."""

        period = (period or DownloadPeriod.last_days(30)).truncated_to_days()
        if period.start >= period.end:
            raise ValueError("download period start must be before its end")

        expected, interval = candles_count(period, timeframe)
        self._logger.info(
            "download_started",
            extra={"symbol": symbol, "timeframe": timeframe, "candle_count": expected},
        )

        written = write_candles_csv(output, [])
        begin = period.start
        while begin < period.end:
            end = min(begin + interval * BATCH_SIZE, period.end)
            # bounds are inclusive, so stop one millisecond short of the next batch
            candles = await self._exchange.candles_by_period(
                symbol, timeframe, datetime_to_ms(begin), datetime_to_ms(end) - 1
            )
            written += write_candles_csv(output, candles, append=True)
            begin = end

        self._logger.info(
            "download_finished",
            extra={"symbol": symbol, "timeframe": timeframe, "written": written, "path": str(output)},
        )
        return written
