"""Command line candle downloader producing backtest CSV files."""

import argparse
import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from ma_cross_bot.core.config import get_settings
from ma_cross_bot.core.errors import ConfigurationError, MACrossBotError
from ma_cross_bot.core.logging import configure_logging
from ma_cross_bot.core.rate_limiter import RateLimiter
from ma_cross_bot.exchange.binance import BinanceExchange
from ma_cross_bot.pipeline.download import DownloadPeriod, Downloader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Download candles within a time range")
    parser.add_argument("-S", "--symbol", default="BTCUSDT", help="symbol to download")
    parser.add_argument("-t", "--timeframe", default="1h", help="candle timeframe")
    parser.add_argument("-o", "--output", default="./data/out.csv", help="output CSV file")
    parser.add_argument("-d", "--days", type=int, default=0, help="number of days up to now")
    parser.add_argument("-s", "--start", type=int, default=0, help="start time in milliseconds")
    parser.add_argument("-e", "--end", type=int, default=0, help="end time in milliseconds")
    return parser


def period_from_args(args: argparse.Namespace) -> DownloadPeriod:
    if args.days > 0:
        return DownloadPeriod.last_days(args.days)
    if args.start > 0 and args.end > 0 and args.start < args.end:
        return DownloadPeriod.from_ms(args.start, args.end)
    raise ConfigurationError("either --days or both --start and --end (start < end) are required")


async def _run(argv: Sequence[str] | None) -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, service="downloader")
    logger = logging.getLogger(__name__)
    args = build_parser().parse_args(argv)

    try:
        period = period_from_args(args)
        api_key, api_secret = settings.require_binance_credentials()
    except ConfigurationError as exc:
        logger.error("downloader_invalid_configuration", extra={"error": str(exc)})
        return 1

    try:
        async with BinanceExchange(
            api_key,
            api_secret,
            rest_url=settings.BINANCE_REST_URL,
            ws_url=settings.BINANCE_WS_URL,
            rate_limiter=RateLimiter(settings.BINANCE_REQUEST_RATE, settings.BINANCE_REQUEST_BURST),
            request_timeout_s=settings.BINANCE_REQUEST_TIMEOUT_S,
        ) as exchange:
            await Downloader(exchange).download(
                args.symbol.upper(), args.timeframe, Path(args.output), period
            )
    except (MACrossBotError, OSError, ValueError) as exc:
        logger.error("downloader_failed", extra={"error": str(exc)})
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    try:
        return asyncio.run(_run(argv))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
