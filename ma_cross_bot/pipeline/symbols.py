"""Periodic refresh of the tradable symbol set."""

import asyncio
import logging
import threading

from ma_cross_bot.core.errors import MACrossBotError
from ma_cross_bot.core.types import SymbolInfo, SymbolStatus
from ma_cross_bot.exchange.base import Exchange

FETCH_SYMBOLS_INTERVAL_S = 30 * 60


class SymbolsController:
    """Keeps symbols quoted in ``quote_asset`` that are currently trading.

    Symbols that disappear from a refresh are remembered as deprecated.
    """

    def __init__(
        self,
        exchange: Exchange,
        quote_asset: str = "USDT",
        refresh_interval_s: float = FETCH_SYMBOLS_INTERVAL_S,
        logger: logging.Logger | None = None,
    ) -> None:
        self._exchange = exchange
        self.quote_asset = quote_asset.upper()
        self.refresh_interval_s = refresh_interval_s
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._trading: dict[str, SymbolInfo] = {}
        self._deprecated: dict[str, SymbolInfo] = {}

    def trading_symbols(self) -> dict[str, SymbolInfo]:
        with self._lock:
            return dict(self._trading)

    def deprecated_symbols(self) -> dict[str, SymbolInfo]:
        with self._lock:
            return dict(self._deprecated)

    async def fetch_symbols(self) -> dict[str, SymbolInfo]:
        info = await self._exchange.get_exchange_info()
        fresh = {
            item.symbol: item
            for item in info.symbols
            if item.quote_asset.upper() == self.quote_asset
            and item.status == SymbolStatus.TRADING.value
        }

        with self._lock:
            for symbol, item in self._trading.items():
                if symbol not in fresh:
                    self._deprecated[symbol] = item
            self._trading = fresh

        self._logger.info(
            "symbols_fetched",
            extra={"quote_asset": self.quote_asset, "trading_count": len(fresh)},
        )
        return dict(fresh)

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Refresh every ``refresh_interval_s`` until shutdown; failures wait for the next tick."""

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.refresh_interval_s)
            except asyncio.TimeoutError:
                pass
            if shutdown_event.is_set():
                break

            try:
                await self.fetch_symbols()
            except asyncio.CancelledError:
                raise
            except MACrossBotError as exc:
                self._logger.warning("symbols_refresh_failed", extra={"error": str(exc)})
