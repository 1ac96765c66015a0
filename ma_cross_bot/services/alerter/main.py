"""Live MA crossover alerter: Binance candles in, Telegram alerts out."""

import asyncio
import logging

import uvicorn

from ma_cross_bot.core.config import Settings, get_settings
from ma_cross_bot.core.errors import ConfigurationError, MACrossBotError
from ma_cross_bot.core.logging import configure_logging
from ma_cross_bot.core.rate_limiter import RateLimiter
from ma_cross_bot.exchange.binance import BinanceExchange
from ma_cross_bot.notification.telegram import TelegramNotifier
from ma_cross_bot.pipeline.bot import Bot
from ma_cross_bot.pipeline.candles import ReconnectPolicy
from ma_cross_bot.pipeline.symbols import SymbolsController
from ma_cross_bot.services.api.main import create_app
from ma_cross_bot.services.signals import install_signal_handlers
from ma_cross_bot.strategy.ma_cross import MACrossStrategy


def reconnect_policy_from(settings: Settings) -> ReconnectPolicy:
    return ReconnectPolicy(
        initial_backoff_s=max(0.0, settings.STREAM_RECONNECT_INITIAL_BACKOFF_S),
        max_backoff_s=max(0.0, settings.STREAM_RECONNECT_MAX_BACKOFF_S),
        max_retries=settings.stream_max_retries(),
    )


async def _serve_api(
    strategy: MACrossStrategy, settings: Settings, shutdown_event: asyncio.Event
) -> None:
    config = uvicorn.Config(
        create_app(strategy, settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = lambda: None
    serve_task = asyncio.create_task(server.serve())
    await shutdown_event.wait()
    server.should_exit = True
    await serve_task


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="alerter")
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()

    try:
        api_key, api_secret = settings.require_binance_credentials()
        token, chat_id = settings.require_telegram_credentials()
        ma_period, volume_period = settings.require_strategy_periods()
    except ConfigurationError as exc:
        logger.error("alerter_invalid_configuration", extra={"error": str(exc)})
        return 1

    timeframes = settings.timeframes()
    if not timeframes:
        logger.error("alerter_invalid_timeframes")
        return 1

    install_signal_handlers(shutdown_event, logger, service="alerter")
    logger.info(
        "alerter_startup",
        extra={
            "symbols": list(settings.symbols()),
            "excluded_symbols": list(settings.excluded_symbols()),
            "timeframes": list(timeframes),
            "ma_period": ma_period,
            "api_enabled": settings.API_ENABLED,
        },
    )

    notifier = TelegramNotifier(
        token,
        chat_id,
        rate_limiter=RateLimiter(settings.TELEGRAM_RATE_LIMIT, settings.TELEGRAM_RATE_BURST),
        timeout_s=settings.TELEGRAM_TIMEOUT_S,
        queue_size=settings.NOTIFY_QUEUE_SIZE,
    )
    strategy = MACrossStrategy(notifier, ma_period=ma_period, volume_period=volume_period)
    await notifier.start()

    api_task: asyncio.Task | None = None
    try:
        async with BinanceExchange(
            api_key,
            api_secret,
            rest_url=settings.BINANCE_REST_URL,
            ws_url=settings.BINANCE_WS_URL,
            rate_limiter=RateLimiter(settings.BINANCE_REQUEST_RATE, settings.BINANCE_REQUEST_BURST),
            request_timeout_s=settings.BINANCE_REQUEST_TIMEOUT_S,
        ) as exchange:
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
                reconnect_policy=reconnect_policy_from(settings),
            )
            await bot.setup()
            if settings.API_ENABLED:
                api_task = asyncio.create_task(_serve_api(strategy, settings, shutdown_event))
            await bot.run(shutdown_event, timeframes)
    except MACrossBotError as exc:
        logger.error("alerter_failed", extra={"error": str(exc)})
        return 1
    finally:
        shutdown_event.set()
        if api_task is not None:
            await api_task
        await notifier.stop()

    logger.info("alerter_shutdown")
    return 0


def main() -> int:
    """Run the alerter process until interrupted."""

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
