"""Per (symbol, timeframe) bar storage with parallel OHLCV series."""

import threading
from enum import Enum

from ma_cross_bot.core.errors import InsufficientDataError
from ma_cross_bot.core.types import Candle, FeedKey
from ma_cross_bot.data.series import Series


class CandleAttribute(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    HIGH = "high"
    LOW = "low"
    VOLUME = "volume"


class Dataframe:
    """Parallel bar series for one feed.

    Index ``i`` of every series and of ``times`` refers to the same bar, so all of
    them have the same length after every operation. ``lock`` is reentrant: hold it
    to read several attributes as one consistent view.
    """

    def __init__(self, symbol: str, timeframe: str) -> None:
        self.key = FeedKey(symbol, timeframe)
        self.open = Series()
        self.close = Series()
        self.high = Series()
        self.low = Series()
        self.volume = Series()
        self._times: list[int] = []
        self.last_update_ms: int | None = None
        self.lock = threading.RLock()

    @property
    def symbol(self) -> str:
        return self.key.symbol

    @property
    def timeframe(self) -> str:
        return self.key.timeframe

    def __len__(self) -> int:
        with self.lock:
            return len(self._times)

    def times(self) -> list[int]:
        with self.lock:
            return list(self._times)

    def is_last_candle(self, candle: Candle) -> bool:
        """Whether ``candle`` revises the newest bar (same open time)."""

        with self.lock:
            return bool(self._times) and self._times[-1] == candle.open_time_ms

    def append(self, candle: Candle) -> None:
        with self.lock:
            self.open.append(candle.open)
            self.close.append(candle.close)
            self.high.append(candle.high)
            self.low.append(candle.low)
            self.volume.append(candle.volume)
            self._times.append(candle.open_time_ms)
            self.last_update_ms = candle.open_time_ms

    def update_last(self, candle: Candle) -> None:
        """Overwrite the newest bar with a revision of the still-open candle."""

        with self.lock:
            if not self._times:
                raise InsufficientDataError(f"{self.key} has no bar to update")
            self.open.set_last(candle.open)
            self.close.set_last(candle.close)
            self.high.set_last(candle.high)
            self.low.set_last(candle.low)
            self.volume.set_last(candle.volume)
            self._times[-1] = candle.open_time_ms
            self.last_update_ms = candle.open_time_ms

    def upsert(self, candle: Candle, allow_update: bool = True) -> bool:
        """Update the newest bar when ``candle`` revises it, else append; True when updated."""

        with self.lock:
            if allow_update and self.is_last_candle(candle):
                self.update_last(candle)
                return True
            self.append(candle)
            return False

    def series(self, attribute: CandleAttribute) -> Series:
        return getattr(self, CandleAttribute(attribute).value)

    def last_values(self, attribute: CandleAttribute, count: int) -> list[float]:
        with self.lock:
            return self.series(attribute).last_values(count)

    def last(self, attribute: CandleAttribute, offset: int = 0) -> float:
        with self.lock:
            return self.series(attribute).last(offset)

    def to_dict(self) -> dict[str, list]:
        """Copy every column, e.g. to compare two frames."""

        with self.lock:
            return {
                "time": list(self._times),
                **{attribute.value: self.series(attribute).to_list() for attribute in CandleAttribute},
            }

    def __repr__(self) -> str:
        return f"Dataframe({self.key}, bars={len(self)})"
