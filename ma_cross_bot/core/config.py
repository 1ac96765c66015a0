"""Environment-driven settings read once by each service entrypoint."""

from functools import lru_cache
from pathlib import Path
from typing import Callable

from pydantic_settings import BaseSettings, SettingsConfigDict

from ma_cross_bot.core.errors import ConfigurationError
from ma_cross_bot.core.types import FeedKey


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "MA Cross Bot"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    API_ENABLED: bool = False

    SYMBOLS: str = ""
    EXCLUDED_SYMBOLS: str = ""
    TIMEFRAMES: str = "4h"
    QUOTE_ASSET: str = "USDT"

    BINANCE_API_KEY: str = ""
    BINANCE_API_SECRET: str = ""
    BINANCE_REST_URL: str = "https://api.binance.com"
    BINANCE_WS_URL: str = "wss://stream.binance.com:9443/ws"
    BINANCE_REQUEST_RATE: float = 20.0
    BINANCE_REQUEST_BURST: int = 20
    BINANCE_REQUEST_TIMEOUT_S: float = 5.0

    TELEGRAM_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    TELEGRAM_RATE_LIMIT: float = 30.0
    TELEGRAM_RATE_BURST: int = 1
    TELEGRAM_TIMEOUT_S: float = 5.0
    NOTIFY_QUEUE_SIZE: int = 100

    MA_PERIOD: int = 200
    VOLUME_PERIOD: int = 20

    SYMBOL_REFRESH_INTERVAL_S: float = 1800.0

    STREAM_RECONNECT_INITIAL_BACKOFF_S: float = 1.0
    STREAM_RECONNECT_MAX_BACKOFF_S: float = 30.0
    STREAM_MAX_RETRIES: int = 0

    BACKTEST_FEEDS: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def symbols(self) -> tuple[str, ...]:
        """Return explicitly selected symbols, empty when every trading symbol is wanted."""

        return self._split_csv(self.SYMBOLS, transform=str.upper)

    def excluded_symbols(self) -> tuple[str, ...]:
        return self._split_csv(self.EXCLUDED_SYMBOLS, transform=str.upper)

    def timeframes(self) -> tuple[str, ...]:
        """Return normalized timeframe list from TIMEFRAMES."""

        return self._split_csv(self.TIMEFRAMES, transform=str.lower)

    def stream_max_retries(self) -> int | None:
        """Return the stream retry cap, None meaning unbounded."""

        if self.STREAM_MAX_RETRIES <= 0:
            return None
        return self.STREAM_MAX_RETRIES

    def backtest_feeds(self) -> tuple[tuple[FeedKey, Path], ...]:
        """Parse BACKTEST_FEEDS entries of the form SYMBOL:TIMEFRAME:path."""

        feeds: list[tuple[FeedKey, Path]] = []
        for entry in self._split_csv(self.BACKTEST_FEEDS, transform=str.strip):
            parts = entry.split(":", 2)
            if len(parts) != 3 or not all(part.strip() for part in parts):
                raise ConfigurationError(f"invalid backtest feed entry: {entry!r}")
            symbol, timeframe, path = (part.strip() for part in parts)
            feeds.append((FeedKey(symbol.upper(), timeframe.lower()), Path(path)))
        return tuple(feeds)

    def require_binance_credentials(self) -> tuple[str, str]:
        """Return API key and secret or fail when either is missing."""

        api_key = self.BINANCE_API_KEY.strip()
        api_secret = self.BINANCE_API_SECRET.strip()
        if not api_key:
            raise ConfigurationError("BINANCE_API_KEY is required")
        if not api_secret:
            raise ConfigurationError("BINANCE_API_SECRET is required")
        return api_key, api_secret

    def require_telegram_credentials(self) -> tuple[str, str]:
        """Return bot token and chat id or fail when either is missing."""

        token = self.TELEGRAM_TOKEN.strip()
        chat_id = self.TELEGRAM_CHAT_ID.strip()
        if not token:
            raise ConfigurationError("TELEGRAM_TOKEN is required")
        if not chat_id:
            raise ConfigurationError("TELEGRAM_CHAT_ID is required")
        return token, chat_id

    def require_strategy_periods(self) -> tuple[int, int]:
        if self.MA_PERIOD <= 0:
            raise ConfigurationError("MA_PERIOD must be positive")
        if self.VOLUME_PERIOD <= 0:
            raise ConfigurationError("VOLUME_PERIOD must be positive")
        return self.MA_PERIOD, self.VOLUME_PERIOD

    @staticmethod
    def _split_csv(value: str, transform: Callable[[str], str]) -> tuple[str, ...]:
        """Split comma-separated values while removing empty entries and duplicates."""

        items: list[str] = []
        seen: set[str] = set()

        for raw in value.split(","):
            item = transform(raw.strip())
            if not item or item in seen:
                continue
            seen.add(item)
            items.append(item)

        return tuple(items)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
