"""Moving-average crossover alerts driven by a per-pair three-state machine.

Each (symbol, timeframe) pair sits ``above``, ``below`` or ``equal`` to its moving
average of closes. The first evaluated candle only classifies the pair. Afterwards a
close at or above the average moves a ``below``/``equal`` pair ``above`` (cross up),
and a close at or below it moves an ``above``/``equal`` pair ``below`` (cross down).
A pair alerts at most once per bar: a transition is refused while the triggering
bar's open time equals the one of the previous transition.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum

from ma_cross_bot.core.time_utils import ms_to_datetime
from ma_cross_bot.core.types import FeedKey
from ma_cross_bot.data.dataframe import CandleAttribute, Dataframe
from ma_cross_bot.data.series import moving_average
from ma_cross_bot.notification.base import EMOJI_ARROW_DOWN, EMOJI_ARROW_UP, Notifier
from ma_cross_bot.strategy.base import Strategy

DEFAULT_MA_PERIOD = 200
DEFAULT_VOLUME_PERIOD = 20


class MAState(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    EQUAL = "equal"


class CrossSignal(str, Enum):
    CROSS_UP = "ma_cross_up"
    CROSS_DOWN = "ma_cross_down"


class MATrend(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True, slots=True)
class Transition:
    """Outcome of applying a signal: the next state, or the unchanged one when rejected."""

    accepted: bool
    state: MAState


_TRANSITIONS: dict[CrossSignal, tuple[frozenset[MAState], MAState]] = {
    CrossSignal.CROSS_UP: (frozenset({MAState.BELOW, MAState.EQUAL}), MAState.ABOVE),
    CrossSignal.CROSS_DOWN: (frozenset({MAState.ABOVE, MAState.EQUAL}), MAState.BELOW),
}


def transition(state: MAState, signal: CrossSignal) -> Transition:
    sources, target = _TRANSITIONS[signal]
    if state not in sources:
        return Transition(accepted=False, state=state)
    return Transition(accepted=True, state=target)


def classify(close: float, ma: float) -> MAState:
    if close > ma:
        return MAState.ABOVE
    if close < ma:
        return MAState.BELOW
    return MAState.EQUAL


def ma_trend(previous_ma: float, last_ma: float) -> MATrend:
    return MATrend.UP if previous_ma < last_ma else MATrend.DOWN


@dataclass(frozen=True, slots=True)
class MACrossUpdate:
    """Inputs of one evaluation, computed from the pair's dataframe."""

    symbol: str
    timeframe: str
    time_ms: int
    close: float
    previous_ma: float
    last_ma: float
    volume: float = 0.0
    average_volume: float = 0.0

    @property
    def key(self) -> FeedKey:
        return FeedKey(self.symbol, self.timeframe)

    @property
    def volume_ratio(self) -> float | None:
        if self.average_volume <= 0.0:
            return None
        return self.volume / self.average_volume


@dataclass(slots=True)
class PairState:
    state: MAState
    initialized_ms: int
    last_transition_ms: int | None = None


@dataclass(frozen=True, slots=True)
class MACrossAlert:
    signal: CrossSignal
    symbol: str
    timeframe: str
    price: float
    ma: float
    ma_period: int
    trend: MATrend
    volume: float
    average_volume: float
    time_ms: int

    def message(self) -> str:
        emoji = EMOJI_ARROW_UP if self.signal is CrossSignal.CROSS_UP else EMOJI_ARROW_DOWN
        symbol_info = (
            f'<a href="https://www.binance.com/en/trade/{self.symbol}">Symbol {self.symbol}</a>'
        )
        if self.average_volume > 0.0:
            ratio = f"{self.volume / self.average_volume:.2f}x"
        else:
            ratio = "n/a"
        return (
            f"{emoji} MA Cross | {symbol_info} | Timeframe {self.timeframe} \n"
            f"Last price: <b>{self.price:g}</b> \n"
            f"Last MA{self.ma_period}: <b>{self.ma:g}</b> \n"
            f"MA Trend: <b>{self.trend.value}</b> \n"
            f"Volume: <b>{self.volume:g}</b> (avg <b>{self.average_volume:g}</b>, ratio <b>{ratio}</b>) \n"
            f"Last Update <b>{ms_to_datetime(self.time_ms).isoformat()}</b>"
        )


class MACrossStrategy(Strategy):
    """Alerts when the close crosses the ``ma_period`` simple moving average."""

    def __init__(
        self,
        notifier: Notifier,
        ma_period: int = DEFAULT_MA_PERIOD,
        volume_period: int = DEFAULT_VOLUME_PERIOD,
        logger: logging.Logger | None = None,
    ) -> None:
        if ma_period <= 0 or volume_period <= 0:
            raise ValueError("ma_period and volume_period must be positive")
        self.notifier = notifier
        self.ma_period = ma_period
        self.volume_period = volume_period
        self._logger = logger or logging.getLogger(__name__)
        # one lock for every pair; evaluations are short
        self._lock = threading.Lock()
        self._states: dict[FeedKey, PairState] = {}

    def init(self) -> None:
        self._send("MA cross alert bot started")

    @property
    def warmup_period(self) -> int:
        return max(self.ma_period, self.volume_period) + 1

    def state(self, symbol: str, timeframe: str) -> PairState | None:
        with self._lock:
            pair = self._states.get(FeedKey(symbol, timeframe))
            return replace(pair) if pair is not None else None

    def states(self) -> dict[FeedKey, PairState]:
        with self._lock:
            return {key: replace(pair) for key, pair in self._states.items()}

    def build_update(self, dataframe: Dataframe) -> MACrossUpdate:
        with dataframe.lock:
            closes = dataframe.last_values(CandleAttribute.CLOSE, self.ma_period + 1)
            volumes = dataframe.last_values(CandleAttribute.VOLUME, self.volume_period + 1)
            time_ms = dataframe.last_update_ms

        return MACrossUpdate(
            symbol=dataframe.symbol,
            timeframe=dataframe.timeframe,
            time_ms=time_ms,
            close=closes[-1],
            previous_ma=moving_average(closes[:-1], self.ma_period),
            last_ma=moving_average(closes[1:], self.ma_period),
            volume=volumes[-1],
            average_volume=sum(volumes[:-1]) / float(self.volume_period),
        )

    def on_candle(self, dataframe: Dataframe) -> None:
        self.handle_update(self.build_update(dataframe))

    def handle_update(self, update: MACrossUpdate) -> MACrossAlert | None:
        """Advance the pair's state machine; returns the alert that was sent, if any."""

        with self._lock:
            pair = self._states.get(update.key)
            if pair is None:
                initial = classify(update.close, update.last_ma)
                self._states[update.key] = PairState(state=initial, initialized_ms=update.time_ms)
                self._logger.info(
                    "ma_cross_state_initialized",
                    extra={
                        "symbol": update.symbol,
                        "timeframe": update.timeframe,
                        "state": initial.value,
                        "last_price": update.close,
                        "previous_ma": update.previous_ma,
                        "last_ma": update.last_ma,
                    },
                )
                return None

            if pair.state in (MAState.BELOW, MAState.EQUAL) and update.close >= update.last_ma:
                signal = CrossSignal.CROSS_UP
            elif pair.state in (MAState.ABOVE, MAState.EQUAL) and update.close <= update.last_ma:
                signal = CrossSignal.CROSS_DOWN
            else:
                return None

            if pair.last_transition_ms == update.time_ms:
                return None

            result = transition(pair.state, signal)
            if not result.accepted:
                self._logger.error(
                    "ma_cross_transition_rejected",
                    extra={
                        "symbol": update.symbol,
                        "timeframe": update.timeframe,
                        "state": pair.state.value,
                        "signal": signal.value,
                    },
                )
                return None

            pair.state = result.state
            pair.last_transition_ms = update.time_ms
            alert = MACrossAlert(
                signal=signal,
                symbol=update.symbol,
                timeframe=update.timeframe,
                price=update.close,
                ma=update.last_ma,
                ma_period=self.ma_period,
                trend=ma_trend(update.previous_ma, update.last_ma),
                volume=update.volume,
                average_volume=update.average_volume,
                time_ms=update.time_ms,
            )
            self._logger.info(
                signal.value,
                extra={
                    "symbol": update.symbol,
                    "timeframe": update.timeframe,
                    "last_price": update.close,
                    "ma_trend": alert.trend.value,
                    "next_state": result.state.value,
                    "last_update_ms": update.time_ms,
                    "volume_ratio": update.volume_ratio,
                },
            )

        self._send(alert.message())
        return alert

    def _send(self, message: str) -> None:
        try:
            self.notifier.notify(message)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("notification_failed", extra={"error": str(exc)})
