"""Telegram bot notifier with a bounded send queue and rate limiting."""

import asyncio
import logging
from typing import Any

import aiohttp

from ma_cross_bot.core.errors import MACrossBotError, RateLimitExceeded
from ma_cross_bot.core.rate_limiter import RateLimiter
from ma_cross_bot.notification.base import Notifier

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TELEGRAM_RATE_LIMIT = 30
DEFAULT_TELEGRAM_RATE_BURST = 1
DEFAULT_TELEGRAM_TIMEOUT_S = 5.0
DEFAULT_QUEUE_SIZE = 100


class TelegramError(MACrossBotError):
    """Telegram rejected or failed to deliver a message."""


class TelegramNotifier(Notifier):
    """Queues messages from synchronous callers and delivers them from one worker task."""

    def __init__(
        self,
        token: str,
        chat_id: str,
        rate_limiter: RateLimiter | None = None,
        timeout_s: float = DEFAULT_TELEGRAM_TIMEOUT_S,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        api_url: str = TELEGRAM_API_URL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = f"{api_url.rstrip('/')}/bot{token}/sendMessage"
        self.chat_id = chat_id
        self._rate_limiter = rate_limiter or RateLimiter(
            DEFAULT_TELEGRAM_RATE_LIMIT, DEFAULT_TELEGRAM_RATE_BURST
        )
        self._timeout_s = timeout_s
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max(1, queue_size))
        self._session: aiohttp.ClientSession | None = None
        self._worker: asyncio.Task | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def notify(self, message: str) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.error(
                "telegram_queue_full",
                extra={"queue_size": self._queue.maxsize, "text": message[:200]},
            )

    async def start(self) -> None:
        if self._worker is not None:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_s * 2)
            )
        self._worker = asyncio.create_task(self._process_queue())
        self._logger.info("telegram_notifier_started")

    async def stop(self, drain_timeout_s: float = 5.0) -> None:
        """Give queued messages a chance to go out, then stop the worker."""

        if self._worker is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout_s)
            except asyncio.TimeoutError:
                self._logger.warning(
                    "telegram_queue_not_drained", extra={"pending": self._queue.qsize()}
                )
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._session is not None:
            await self._session.close()
            self._session = None
        self._logger.info("telegram_notifier_stopped")

    async def _process_queue(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.send_message(message)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "telegram_send_failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
            finally:
                self._queue.task_done()

    async def send_message(self, message: str) -> None:
        """Deliver one message now; raises on rate limit timeout or API failure."""

        try:
            await self._rate_limiter.acquire(1, timeout=self._timeout_s)
        except RateLimitExceeded as exc:
            self._logger.error("telegram_rate_limited", extra={"error": str(exc)})
            raise

        await self._post(
            {
                "chat_id": self.chat_id,
                "text": message,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            }
        )

    async def _post(self, payload: dict[str, Any]) -> None:
        if self._session is None:
            raise TelegramError("telegram notifier is not started")
        async with self._session.post(self._url, json=payload) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise TelegramError(f"telegram API error {resp.status}: {text[:200]}")
