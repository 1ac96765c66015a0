"""Test helpers: candle factory, recording notifier and strategy, scripted exchange."""

import asyncio
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence

from ma_cross_bot.core.errors import InsufficientDataError
from ma_cross_bot.core.types import Candle, ExchangeInfo, FeedKey, SymbolInfo, SymbolStatus
from ma_cross_bot.data.dataframe import Dataframe
from ma_cross_bot.exchange.base import Exchange
from ma_cross_bot.notification.base import Notifier
from ma_cross_bot.strategy.base import Strategy

HOUR_MS = 3_600_000
START_MS = 1_627_344_000_000  # 2021-07-27T00:00:00Z

# stream item that parks the subscription until it is cancelled
BLOCK = object()


def make_candle(
    close: float,
    index: int = 0,
    symbol: str = "BTCUSDT",
    timeframe: str = "1h",
    volume: float = 100.0,
    complete: bool = True,
) -> Candle:
    return Candle(
        symbol=symbol,
        timeframe=timeframe,
        open_time_ms=START_MS + index * HOUR_MS,
        open=close,
        close=close,
        low=close - 1.0,
        high=close + 1.0,
        volume=volume,
        trades=10,
        complete=complete,
    )


def make_history(closes: Iterable[float], symbol: str = "BTCUSDT", timeframe: str = "1h") -> list[Candle]:
    return [
        make_candle(close, index=index, symbol=symbol, timeframe=timeframe)
        for index, close in enumerate(closes)
    ]


def usdt_symbol(symbol: str, status: str = SymbolStatus.TRADING.value) -> SymbolInfo:
    return SymbolInfo(symbol=symbol, status=status, base_asset=symbol[:-4], quote_asset="USDT")


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class ScriptedExchange(Exchange):
    """In-memory exchange whose live streams replay scripted sessions.

    Each call to ``candles_subscription`` consumes the next session of the feed. A
    session item is a candle to yield, an exception to raise, or ``BLOCK``.
    """

    def __init__(
        self,
        history: Mapping[FeedKey, Sequence[Candle]] | None = None,
        sessions: Mapping[FeedKey, Sequence[Sequence[object]]] | None = None,
        symbols: Iterable[SymbolInfo] = (),
    ) -> None:
        self.history = {key: list(candles) for key, candles in (history or {}).items()}
        self.sessions = {key: [list(session) for session in items] for key, items in (sessions or {}).items()}
        self.symbols = tuple(symbols)
        self.subscription_calls: dict[FeedKey, int] = {}
        self.exchange_info_calls = 0

    async def get_exchange_info(self) -> ExchangeInfo:
        self.exchange_info_calls += 1
        return ExchangeInfo(symbols=self.symbols)

    async def candles_by_limit(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        candles = self.history.get(FeedKey(symbol, timeframe), [])
        if len(candles) < limit:
            raise InsufficientDataError(f"{symbol}/{timeframe}: {len(candles)} < {limit}")
        return candles[-limit:]

    async def candles_by_period(
        self, symbol: str, timeframe: str, start_ms: int, end_ms: int
    ) -> list[Candle]:
        return [
            candle
            for candle in self.history.get(FeedKey(symbol, timeframe), [])
            if start_ms <= candle.open_time_ms <= end_ms
        ]

    async def candles_subscription(self, symbol: str, timeframe: str) -> AsyncIterator[Candle]:
        key = FeedKey(symbol, timeframe)
        self.subscription_calls[key] = self.subscription_calls.get(key, 0) + 1
        sessions = self.sessions.get(key, [])
        if not sessions:
            return
        for item in sessions.pop(0):
            await asyncio.sleep(0)
            if item is BLOCK:
                await asyncio.Event().wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item


class RecordingStrategy(Strategy):
    """Records the dataframe length and last close seen on every evaluation."""

    def __init__(self, warmup: int = 3) -> None:
        self.warmup = warmup
        self.calls: list[tuple[int, float]] = []

    def init(self) -> None:
        pass

    @property
    def warmup_period(self) -> int:
        return self.warmup

    def on_candle(self, dataframe: Dataframe) -> None:
        self.calls.append((len(dataframe), dataframe.close.last()))
