"""Shared lightweight types to keep module interfaces explicit and typed."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

CANDLE_ROW_LENGTH = 9


class FeedKey(NamedTuple):
    """Composite (symbol, timeframe) key addressing one candle feed."""

    symbol: str
    timeframe: str

    def __str__(self) -> str:
        return f"{self.symbol}/{self.timeframe}"


class SymbolStatus(str, Enum):
    TRADING = "TRADING"
    BREAK = "BREAK"


@dataclass(frozen=True, slots=True)
class SymbolInfo:
    """Tradable pair metadata reported by the exchange."""

    symbol: str
    status: str
    base_asset: str
    quote_asset: str


@dataclass(frozen=True, slots=True)
class ExchangeInfo:
    symbols: tuple[SymbolInfo, ...] = ()


@dataclass(frozen=True, slots=True)
class Candle:
    """One OHLCV bar; live streams repeat an open time until ``complete`` is set."""

    symbol: str
    timeframe: str
    open_time_ms: int
    open: float
    close: float
    low: float
    high: float
    volume: float
    trades: int = 0
    complete: bool = True

    @property
    def key(self) -> FeedKey:
        return FeedKey(self.symbol, self.timeframe)

    def to_row(self) -> list[str]:
        """Serialize to the CSV column order used by backtest files."""

        return [
            self.symbol,
            self.timeframe,
            str(self.open_time_ms // 1000),
            f"{self.open:f}",
            f"{self.close:f}",
            f"{self.low:f}",
            f"{self.high:f}",
            f"{self.volume:.1f}",
            str(self.trades),
        ]

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "Candle":
        """Parse a CSV row; rows persisted to disk are always closed bars."""

        if len(row) < CANDLE_ROW_LENGTH:
            raise ValueError(f"invalid csv candle row: expected {CANDLE_ROW_LENGTH} fields, got {len(row)}")

        return cls(
            symbol=row[0].strip(),
            timeframe=row[1].strip(),
            open_time_ms=int(row[2]) * 1000,
            open=float(row[3]),
            close=float(row[4]),
            low=float(row[5]),
            high=float(row[6]),
            volume=float(row[7]),
            trades=int(row[8]),
            complete=True,
        )
