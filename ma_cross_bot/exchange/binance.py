"""Binance spot market data over REST (aiohttp) and kline websockets."""

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import websockets
from websockets.exceptions import ConnectionClosed

from ma_cross_bot.core.errors import ExchangeError
from ma_cross_bot.core.rate_limiter import RateLimiter
from ma_cross_bot.core.time_utils import timeframe_to_seconds
from ma_cross_bot.core.types import Candle, ExchangeInfo, SymbolInfo
from ma_cross_bot.exchange.base import Exchange

REQUEST_PER_SECOND = 20
REQUEST_TIMEOUT_S = 5.0
EXCHANGE_INFO_WEIGHT = 10
KLINES_WEIGHT = 1
_KLINES_MAX_LIMIT = 1000
_WS_PING_INTERVAL_S = 30
_WS_RECV_TIMEOUT_S = 1.0


def candle_from_kline(symbol: str, timeframe: str, kline: list[Any]) -> Candle:
    """Build a closed candle from a REST kline array."""

    return Candle(
        symbol=symbol,
        timeframe=timeframe,
        open_time_ms=int(kline[0]),
        open=float(kline[1]),
        high=float(kline[2]),
        low=float(kline[3]),
        close=float(kline[4]),
        volume=float(kline[5]),
        trades=int(kline[8]),
        complete=True,
    )


def candle_from_ws_payload(payload: dict[str, Any]) -> Candle | None:
    """Build a candle from a kline stream event, None for any other message."""

    if "data" in payload and isinstance(payload["data"], dict):
        payload = payload["data"]

    if payload.get("e") != "kline":
        return None

    kline = payload.get("k")
    if not isinstance(kline, dict):
        return None

    try:
        return Candle(
            symbol=str(kline.get("s") or payload["s"]).upper(),
            timeframe=str(kline["i"]),
            open_time_ms=int(kline["t"]),
            open=float(kline["o"]),
            high=float(kline["h"]),
            low=float(kline["l"]),
            close=float(kline["c"]),
            volume=float(kline["v"]),
            trades=int(kline.get("n", 0)),
            complete=bool(kline.get("x")),
        )
    except (KeyError, TypeError, ValueError):
        return None


def _websocket_connect_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {"ping_interval": _WS_PING_INTERVAL_S}
    if "proxy" in inspect.signature(websockets.connect).parameters:
        kwargs["proxy"] = None
    return kwargs


class BinanceExchange(Exchange):
    """Binance spot client; use as an async context manager to own the HTTP session."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        rest_url: str = "https://api.binance.com",
        ws_url: str = "wss://stream.binance.com:9443/ws",
        rate_limiter: RateLimiter | None = None,
        request_timeout_s: float = REQUEST_TIMEOUT_S,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._rest_url = rest_url.rstrip("/")
        self._ws_url = ws_url.rstrip("/")
        self._rate_limiter = rate_limiter or RateLimiter(REQUEST_PER_SECOND, REQUEST_PER_SECOND)
        self._request_timeout_s = request_timeout_s
        self._session = session
        self._owns_session = session is None
        self._logger = logger or logging.getLogger(__name__)

    async def __aenter__(self) -> "BinanceExchange":
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout_s * 2)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"X-MBX-APIKEY": self._api_key},
            )
        try:
            await self.ping()
        except ExchangeError:
            await self.__aexit__(None, None, None)
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _get(self, path: str, params: dict[str, Any] | None = None, weight: int = 1) -> Any:
        if self._session is None:
            raise ExchangeError("binance session is not open")

        await self._rate_limiter.acquire(weight, timeout=self._request_timeout_s)
        url = f"{self._rest_url}{path}"
        try:
            async with self._session.get(url, params=params) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise ExchangeError(f"GET {path} failed with status {resp.status}: {text[:200]}")
                return await resp.json()
        except aiohttp.ClientError as exc:
            raise ExchangeError(f"GET {path} failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise ExchangeError(f"GET {path} timed out") from exc

    async def ping(self) -> None:
        try:
            await self._get("/api/v3/ping")
        except ExchangeError as exc:
            self._logger.error("binance_ping_failed", extra={"error": str(exc)})
            raise

    async def get_exchange_info(self) -> ExchangeInfo:
        try:
            payload = await self._get("/api/v3/exchangeInfo", weight=EXCHANGE_INFO_WEIGHT)
        except ExchangeError as exc:
            self._logger.error("binance_exchange_info_failed", extra={"error": str(exc)})
            raise

        return ExchangeInfo(
            symbols=tuple(
                SymbolInfo(
                    symbol=str(item.get("symbol", "")),
                    status=str(item.get("status", "")),
                    base_asset=str(item.get("baseAsset", "")),
                    quote_asset=str(item.get("quoteAsset", "")),
                )
                for item in payload.get("symbols", [])
            )
        )

    async def candles_by_limit(self, symbol: str, timeframe: str, limit: int) -> list[Candle]:
        data = await self._get(
            "/api/v3/klines",
            params={"symbol": symbol, "interval": timeframe, "limit": limit},
            weight=KLINES_WEIGHT,
        )
        return [candle_from_kline(symbol, timeframe, kline) for kline in data]

    async def candles_by_period(
        self, symbol: str, timeframe: str, start_ms: int, end_ms: int
    ) -> list[Candle]:
        step_ms = timeframe_to_seconds(timeframe) * 1000
        candles: list[Candle] = []
        cursor = start_ms
        while cursor <= end_ms:
            data = await self._get(
                "/api/v3/klines",
                params={
                    "symbol": symbol,
                    "interval": timeframe,
                    "startTime": cursor,
                    "endTime": end_ms,
                    "limit": _KLINES_MAX_LIMIT,
                },
                weight=KLINES_WEIGHT,
            )
            if not data:
                break
            batch = [candle_from_kline(symbol, timeframe, kline) for kline in data]
            candles.extend(batch)
            cursor = batch[-1].open_time_ms + step_ms
        return candles

    async def candles_subscription(self, symbol: str, timeframe: str) -> AsyncIterator[Candle]:
        url = f"{self._ws_url}/{symbol.lower()}@kline_{timeframe}"
        try:
            async with websockets.connect(url, **_websocket_connect_kwargs()) as ws:
                self._logger.debug(
                    "binance_candle_subscription",
                    extra={"symbol": symbol, "timeframe": timeframe},
                )
                while True:
                    try:
                        raw_message = await asyncio.wait_for(ws.recv(), timeout=_WS_RECV_TIMEOUT_S)
                    except asyncio.TimeoutError:
                        continue

                    try:
                        payload = json.loads(raw_message)
                    except json.JSONDecodeError:
                        self._logger.warning(
                            "binance_invalid_json_message",
                            extra={"symbol": symbol, "timeframe": timeframe},
                        )
                        continue
                    if not isinstance(payload, dict):
                        continue

                    candle = candle_from_ws_payload(payload)
                    if candle is not None:
                        yield candle
        except ConnectionClosed as exc:
            raise ExchangeError(f"candles subscription stopped: {exc}") from exc
        except OSError as exc:
            raise ExchangeError(f"candles subscription failed: {exc}") from exc
