"""Market data collaborator contract consumed by the candle pipeline."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ma_cross_bot.core.types import Candle, ExchangeInfo


class Exchange(ABC):
    """Source of symbols, historical candles and live candle streams."""

    @abstractmethod
    async def get_exchange_info(self) -> ExchangeInfo:
        ...

    @abstractmethod
    async def candles_by_limit(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        """Return ``limit`` consecutive closed bars, oldest first."""

    @abstractmethod
    async def candles_by_period(
        self, symbol: str, timeframe: str, start_ms: int, end_ms: int
    ) -> list[Candle]:
        """Return bars whose open time lies within ``[start_ms, end_ms]``."""

    @abstractmethod
    def candles_subscription(self, symbol: str, timeframe: str) -> AsyncIterator[Candle]:
        """Stream candles for one feed.

        Raising from the iterator signals a stream error the caller may retry;
        exhausting it means no more candles will ever arrive.
        """
