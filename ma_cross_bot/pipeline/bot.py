"""Wires symbol selection, warm-up preload and live candle distribution together."""

import asyncio
import logging
from collections.abc import Iterable, Mapping

from ma_cross_bot.core.errors import MACrossBotError
from ma_cross_bot.exchange.base import Exchange
from ma_cross_bot.pipeline.candles import CandleController, ReconnectPolicy
from ma_cross_bot.pipeline.symbols import SymbolsController
from ma_cross_bot.strategy.base import Strategy
from ma_cross_bot.strategy.controller import StrategyController


class Bot:
    def __init__(
        self,
        exchange: Exchange,
        strategy: Strategy,
        symbols_controller: SymbolsController | None = None,
        candle_controller: CandleController | None = None,
        selected_symbols: Iterable[str] = (),
        excluded_symbols: Iterable[str] = (),
        reconnect_policy: ReconnectPolicy | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.exchange = exchange
        self.strategy = strategy
        self.symbols_controller = symbols_controller or SymbolsController(exchange)
        self.candle_controller = candle_controller or CandleController(
            exchange, reconnect_policy=reconnect_policy
        )
        self.selected_symbols = tuple(selected_symbols)
        self.excluded_symbols = frozenset(excluded_symbols)
        self.strategy_controllers: list[StrategyController] = []

    async def setup(self) -> None:
        """Run the strategy init hook and the first symbol fetch; failures are fatal."""

        self.strategy.init()
        await self.symbols_controller.fetch_symbols()

    def select_symbols(self) -> list[str]:
        if self.selected_symbols:
            candidates = list(self.selected_symbols)
        else:
            candidates = sorted(self.symbols_controller.trading_symbols())
        return [symbol for symbol in candidates if symbol not in self.excluded_symbols]

    async def subscribe_candles(self, pairs: Mapping[str, str]) -> StrategyController:
        """Subscribe and warm up every pair, starting the controller once all are preloaded."""

        controller = StrategyController(pairs, self.strategy)
        limit = self.strategy.warmup_period

        async def preload(symbol: str, timeframe: str) -> None:
            self.candle_controller.subscribe(symbol, timeframe, controller.on_candle, closed_only=False)
            try:
                candles = await self.exchange.candles_by_limit(symbol, timeframe, limit)
            except MACrossBotError as exc:
                self._logger.error(
                    "candles_by_limit_failed",
                    extra={"symbol": symbol, "timeframe": timeframe, "error": str(exc)},
                )
                raise
            self.candle_controller.preload(symbol, timeframe, candles)

        results = await asyncio.gather(
            *(preload(symbol, timeframe) for symbol, timeframe in pairs.items()),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        controller.start()
        self.strategy_controllers.append(controller)
        return controller

    async def run(self, shutdown_event: asyncio.Event, timeframes: Iterable[str]) -> None:
        symbols = self.select_symbols()
        timeframes = tuple(timeframes)
        self._logger.info(
            "bot_running",
            extra={"symbol_count": len(symbols), "timeframes": list(timeframes)},
        )

        for timeframe in timeframes:
            await self.subscribe_candles({symbol: timeframe for symbol in symbols})

        refresher = asyncio.create_task(self.symbols_controller.run(shutdown_event))
        try:
            await self.candle_controller.start(shutdown_event)
        finally:
            refresher.cancel()
            try:
                await refresher
            except asyncio.CancelledError:
                pass
        self._logger.info("bot_finished")
