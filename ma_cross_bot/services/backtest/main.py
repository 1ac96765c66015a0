"""Replays CSV candle files through the alert pipeline with log-only notifications."""

import asyncio
import logging

from ma_cross_bot.core.config import Settings, get_settings
from ma_cross_bot.core.errors import ConfigurationError, MACrossBotError
from ma_cross_bot.core.logging import configure_logging
from ma_cross_bot.core.types import SymbolInfo, SymbolStatus
from ma_cross_bot.exchange.csvfeed import CSVFeed, SymbolFeed
from ma_cross_bot.notification.base import LogNotifier
from ma_cross_bot.pipeline.bot import Bot
from ma_cross_bot.pipeline.symbols import SymbolsController
from ma_cross_bot.services.signals import install_signal_handlers
from ma_cross_bot.strategy.ma_cross import MACrossStrategy


def symbol_feeds_from(settings: Settings) -> list[SymbolFeed]:
    quote_asset = settings.QUOTE_ASSET.upper()
    feeds = []
    for key, path in settings.backtest_feeds():
        base_asset = key.symbol[: -len(quote_asset)] if key.symbol.endswith(quote_asset) else key.symbol
        feeds.append(
            SymbolFeed(
                symbol_info=SymbolInfo(
                    symbol=key.symbol,
                    status=SymbolStatus.TRADING.value,
                    base_asset=base_asset,
                    quote_asset=quote_asset,
                ),
                timeframe=key.timeframe,
                path=path,
            )
        )
    return feeds


async def run_backtest(settings: Settings, shutdown_event: asyncio.Event) -> MACrossStrategy:
    """Run every configured feed to exhaustion and return the strategy for inspection."""

    feeds = symbol_feeds_from(settings)
    if not feeds:
        raise ConfigurationError("BACKTEST_FEEDS is required")
    ma_period, volume_period = settings.require_strategy_periods()

    exchange = CSVFeed(feeds)
    strategy = MACrossStrategy(LogNotifier(), ma_period=ma_period, volume_period=volume_period)
    timeframes = sorted({feed.timeframe for feed in feeds})
    bot = Bot(
        exchange,
        strategy,
        symbols_controller=SymbolsController(
            exchange,
            quote_asset=settings.QUOTE_ASSET,
            refresh_interval_s=settings.SYMBOL_REFRESH_INTERVAL_S,
        ),
        selected_symbols=settings.symbols(),
        excluded_symbols=settings.excluded_symbols(),
    )
    await bot.setup()

    selected = set(bot.select_symbols())
    for timeframe in timeframes:
        await bot.subscribe_candles(
            {
                feed.symbol_info.symbol: feed.timeframe
                for feed in feeds
                if feed.timeframe == timeframe and feed.symbol_info.symbol in selected
            }
        )
    await bot.candle_controller.start(shutdown_event)
    return strategy


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="backtest")
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event, logger, service="backtest")

    try:
        strategy = await run_backtest(settings, shutdown_event)
    except (MACrossBotError, OSError, ValueError) as exc:
        logger.error("backtest_failed", extra={"error": str(exc)})
        return 1

    logger.info(
        "backtest_finished",
        extra={
            "pairs": {str(key): pair.state.value for key, pair in strategy.states().items()},
        },
    )
    return 0


def main() -> int:
    """Run the backtest once over the configured CSV files."""

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
