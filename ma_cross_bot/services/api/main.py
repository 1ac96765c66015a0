"""FastAPI status service exposing health, version and per-pair crossover state."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from ma_cross_bot.core.config import Settings, get_settings
from ma_cross_bot.core.time_utils import ms_to_datetime
from ma_cross_bot.strategy.ma_cross import MACrossStrategy

logger = logging.getLogger(__name__)


def create_app(strategy: MACrossStrategy, settings: Settings | None = None) -> FastAPI:
    """Build the status app for a running strategy."""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "api_startup",
            extra={"service": "api", "env": settings.ENV, "version": settings.VERSION},
        )
        yield

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return process liveness status."""

        return {"status": "ok"}

    @app.get("/version")
    def version() -> dict[str, str]:
        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "env": settings.ENV,
        }

    @app.get("/pairs")
    def pairs() -> list[dict[str, Any]]:
        """Return the current crossover state of every evaluated pair."""

        result = []
        for key, pair in sorted(strategy.states().items()):
            last_transition = pair.last_transition_ms
            result.append(
                {
                    "symbol": key.symbol,
                    "timeframe": key.timeframe,
                    "state": pair.state.value,
                    "initialized_at": ms_to_datetime(pair.initialized_ms).isoformat(),
                    "last_transition_at": (
                        ms_to_datetime(last_transition).isoformat()
                        if last_transition is not None
                        else None
                    ),
                }
            )
        return result

    return app
