"""Feeds candles into per-pair dataframes and triggers the strategy once warmed up."""

import logging
from collections.abc import Mapping

from ma_cross_bot.core.types import Candle, FeedKey
from ma_cross_bot.data.dataframe import Dataframe
from ma_cross_bot.strategy.base import Strategy


class StrategyController:
    """Owns one dataframe per tracked pair.

    Before ``start`` every candle is appended (preload delivers distinct closed bars)
    and the strategy stays silent; afterwards revisions of the open bar update it
    in place.
    """

    def __init__(
        self,
        pairs: Mapping[str, str],
        strategy: Strategy,
        logger: logging.Logger | None = None,
    ) -> None:
        self.strategy = strategy
        self._logger = logger or logging.getLogger(__name__)
        self._started = False
        # built once here and never resized
        self._dataframes: dict[FeedKey, Dataframe] = {
            FeedKey(symbol, timeframe): Dataframe(symbol, timeframe)
            for symbol, timeframe in pairs.items()
        }

    @property
    def started(self) -> bool:
        return self._started

    @property
    def pairs(self) -> tuple[FeedKey, ...]:
        return tuple(self._dataframes)

    def start(self) -> None:
        self._started = True

    def dataframe(self, symbol: str, timeframe: str) -> Dataframe | None:
        return self._dataframes.get(FeedKey(symbol, timeframe))

    def on_candle(self, candle: Candle) -> None:
        dataframe = self._dataframes.get(candle.key)
        if dataframe is None:
            self._logger.warning(
                "strategy_dataframe_not_found",
                extra={"symbol": candle.symbol, "timeframe": candle.timeframe},
            )
            return

        started = self._started
        dataframe.upsert(candle, allow_update=started)

        if started and len(dataframe) >= self.strategy.warmup_period:
            self.strategy.on_candle(dataframe)
