"""CSV backed exchange used to replay downloaded candles in backtests."""

import asyncio
import csv
import logging
import threading
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from pathlib import Path

from ma_cross_bot.core.errors import InsufficientDataError
from ma_cross_bot.core.types import Candle, ExchangeInfo, FeedKey, SymbolInfo
from ma_cross_bot.exchange.base import Exchange


@dataclass(frozen=True, slots=True)
class SymbolFeed:
    """One CSV file holding the bars of a (symbol, timeframe) pair."""

    symbol_info: SymbolInfo
    timeframe: str
    path: Path


def read_candles_csv(path: Path) -> list[Candle]:
    with Path(path).open("r", encoding="utf-8", newline="") as file_obj:
        return [Candle.from_row(row) for row in csv.reader(file_obj) if row]


def write_candles_csv(path: Path, candles: Iterable[Candle], append: bool = False) -> int:
    """Write candles in the backtest CSV layout and return the number of rows."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("a" if append else "w", encoding="utf-8", newline="") as file_obj:
        writer = csv.writer(file_obj)
        for candle in candles:
            writer.writerow(candle.to_row())
            count += 1
    return count


class CSVFeed(Exchange):
    """Replays bars from CSV files.

    ``candles_by_limit`` consumes bars from the front of each file so that warm-up
    and the following subscription replay never overlap.
    """

    def __init__(self, feeds: Iterable[SymbolFeed], logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._feeds: dict[FeedKey, SymbolFeed] = {}
        self._candles: dict[FeedKey, list[Candle]] = {}

        for feed in feeds:
            key = FeedKey(feed.symbol_info.symbol, feed.timeframe)
            try:
                candles = read_candles_csv(feed.path)
            except (OSError, ValueError) as exc:
                self._logger.error(
                    "csv_feed_parse_failed",
                    extra={"path": str(feed.path), "error": str(exc)},
                )
                raise
            self._feeds[key] = feed
            self._candles[key] = candles
            self._logger.info(
                "csv_feed_loaded",
                extra={"symbol": key.symbol, "timeframe": key.timeframe, "bars": len(candles)},
            )

    async def get_exchange_info(self) -> ExchangeInfo:
        with self._lock:
            return ExchangeInfo(symbols=tuple(feed.symbol_info for feed in self._feeds.values()))

    async def candles_by_limit(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        key = FeedKey(symbol, timeframe)
        with self._lock:
            candles = self._candles.get(key, [])
            if len(candles) < limit:
                raise InsufficientDataError(
                    f"{key}: requested {limit} bars, {len(candles)} available"
                )
            result, self._candles[key] = candles[:limit], candles[limit:]
            return result

    async def candles_by_period(
        self, symbol: str, timeframe: str, start_ms: int, end_ms: int
    ) -> list[Candle]:
        with self._lock:
            return [
                candle
                for candle in self._candles.get(FeedKey(symbol, timeframe), [])
                if start_ms <= candle.open_time_ms <= end_ms
            ]

    async def candles_subscription(self, symbol: str, timeframe: str) -> AsyncIterator[Candle]:
        with self._lock:
            remaining = list(self._candles.get(FeedKey(symbol, timeframe), []))
        for candle in remaining:
            yield candle
            await asyncio.sleep(0)
