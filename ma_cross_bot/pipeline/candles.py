"""Candle distribution: one stream task per feed fanning candles out to subscribers."""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from contextlib import aclosing
from dataclasses import dataclass

from ma_cross_bot.core.types import Candle, FeedKey
from ma_cross_bot.exchange.base import Exchange

CandleConsumer = Callable[[Candle], None]


@dataclass(frozen=True, slots=True)
class Subscription:
    consumer: CandleConsumer
    closed_only: bool = False

    def accepts(self, candle: Candle) -> bool:
        return candle.complete or not self.closed_only


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Exponential backoff between stream reopen attempts; ``max_retries=None`` never gives up."""

    initial_backoff_s: float = 1.0
    max_backoff_s: float = 30.0
    max_retries: int | None = None

    def delay(self, attempt: int) -> float:
        """Delay before reopen number ``attempt`` (1-based)."""

        return min(self.initial_backoff_s * (2 ** max(0, attempt - 1)), self.max_backoff_s)

    def exhausted(self, attempt: int) -> bool:
        return self.max_retries is not None and attempt > self.max_retries


class CandleController:
    """Registry of candle subscribers keyed by (symbol, timeframe)."""

    def __init__(
        self,
        exchange: Exchange,
        reconnect_policy: ReconnectPolicy | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._exchange = exchange
        self._policy = reconnect_policy or ReconnectPolicy()
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._feeds: list[FeedKey] = []
        self._subscriptions: dict[FeedKey, list[Subscription]] = {}

    @property
    def feeds(self) -> tuple[FeedKey, ...]:
        with self._lock:
            return tuple(self._feeds)

    def subscribe(
        self,
        symbol: str,
        timeframe: str,
        consumer: CandleConsumer,
        closed_only: bool = False,
    ) -> None:
        key = FeedKey(symbol, timeframe)
        with self._lock:
            if key not in self._subscriptions:
                self._feeds.append(key)
                self._subscriptions[key] = []
            self._subscriptions[key].append(Subscription(consumer=consumer, closed_only=closed_only))

    def preload(self, symbol: str, timeframe: str, candles: Iterable[Candle]) -> int:
        """Replay historical candles to every subscriber of the feed; call before ``start``."""

        key = FeedKey(symbol, timeframe)
        subscriptions = self._subscribers(key)
        count = 0
        for candle in candles:
            for subscription in subscriptions:
                subscription.consumer(candle)
            count += 1
        self._logger.debug(
            "candles_preloaded",
            extra={"symbol": symbol, "timeframe": timeframe, "count": count},
        )
        return count

    async def start(self, shutdown_event: asyncio.Event) -> None:
        """Consume every registered feed until shutdown or until all streams close."""

        feeds = self.feeds
        self._logger.info("candle_controller_started", extra={"feed_count": len(feeds)})
        await asyncio.gather(*(self._consume_feed(key, shutdown_event) for key in feeds))
        self._logger.info("candle_controller_finished")

    def _subscribers(self, key: FeedKey) -> tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._subscriptions.get(key, ()))

    def _dispatch(self, key: FeedKey, candle: Candle) -> None:
        for subscription in self._subscribers(key):
            if subscription.accepts(candle):
                subscription.consumer(candle)

    async def _stream(self, key: FeedKey, shutdown_event: asyncio.Event, received: list[int]) -> None:
        subscription = self._exchange.candles_subscription(key.symbol, key.timeframe)
        async with aclosing(subscription) as candles:
            async for candle in candles:
                if shutdown_event.is_set():
                    return
                received[0] += 1
                self._dispatch(key, candle)

    async def _consume_feed(self, key: FeedKey, shutdown_event: asyncio.Event) -> None:
        attempt = 0
        while not shutdown_event.is_set():
            received = [0]
            stream_task = asyncio.create_task(self._stream(key, shutdown_event, received))
            stop_task = asyncio.create_task(shutdown_event.wait())
            try:
                await asyncio.wait({stream_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (stream_task, stop_task):
                    if not task.done():
                        task.cancel()
                await asyncio.gather(stream_task, stop_task, return_exceptions=True)

            if shutdown_event.is_set():
                break

            exc = None if stream_task.cancelled() else stream_task.exception()
            if exc is None:
                self._logger.debug(
                    "candle_stream_closed",
                    extra={"symbol": key.symbol, "timeframe": key.timeframe},
                )
                return

            attempt = 1 if received[0] else attempt + 1
            if self._policy.exhausted(attempt):
                self._logger.error(
                    "candle_stream_retries_exhausted",
                    extra={
                        "symbol": key.symbol,
                        "timeframe": key.timeframe,
                        "error": str(exc),
                        "attempts": attempt,
                    },
                )
                return

            delay_s = self._policy.delay(attempt)
            self._logger.warning(
                "candle_stream_error",
                extra={
                    "symbol": key.symbol,
                    "timeframe": key.timeframe,
                    "error": str(exc),
                    "reconnect_in_s": delay_s,
                },
            )
            if delay_s > 0:
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=delay_s)
                except asyncio.TimeoutError:
                    pass

        self._logger.debug(
            "candle_stream_cancelled",
            extra={"symbol": key.symbol, "timeframe": key.timeframe},
        )
