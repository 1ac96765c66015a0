"""Tests for the moving-average crossover state machine and alert strategy."""

import threading

import pytest

from ma_cross_bot.data.dataframe import Dataframe
from ma_cross_bot.notification.base import EMOJI_ARROW_DOWN, EMOJI_ARROW_UP, Notifier
from ma_cross_bot.strategy.ma_cross import (
    CrossSignal,
    MACrossStrategy,
    MACrossUpdate,
    MAState,
    MATrend,
    classify,
    ma_trend,
    transition,
)
from tests.helpers import START_MS, HOUR_MS, make_candle

T0 = 1_627_315_200_000


def update(close, ma, time_ms=T0, previous_ma=None, symbol="BTCUSDT", timeframe="4h", **kwargs):
    return MACrossUpdate(
        symbol=symbol,
        timeframe=timeframe,
        time_ms=time_ms,
        close=close,
        previous_ma=ma if previous_ma is None else previous_ma,
        last_ma=ma,
        **kwargs,
    )


class FailingNotifier(Notifier):
    def notify(self, message: str) -> None:
        raise RuntimeError("telegram down")


@pytest.mark.parametrize(
    ("close", "ma", "expected"),
    [(101.0, 100.0, MAState.ABOVE), (99.0, 100.0, MAState.BELOW), (100.0, 100.0, MAState.EQUAL)],
)
def test_classify(close, ma, expected):
    assert classify(close, ma) is expected


@pytest.mark.parametrize(
    ("state", "signal", "accepted", "next_state"),
    [
        (MAState.BELOW, CrossSignal.CROSS_UP, True, MAState.ABOVE),
        (MAState.EQUAL, CrossSignal.CROSS_UP, True, MAState.ABOVE),
        (MAState.ABOVE, CrossSignal.CROSS_UP, False, MAState.ABOVE),
        (MAState.ABOVE, CrossSignal.CROSS_DOWN, True, MAState.BELOW),
        (MAState.EQUAL, CrossSignal.CROSS_DOWN, True, MAState.BELOW),
        (MAState.BELOW, CrossSignal.CROSS_DOWN, False, MAState.BELOW),
    ],
)
def test_transition_table(state, signal, accepted, next_state):
    result = transition(state, signal)

    assert result.accepted is accepted
    assert result.state is next_state


def test_ma_trend():
    assert ma_trend(100.0, 101.0) is MATrend.UP
    assert ma_trend(101.0, 100.0) is MATrend.DOWN
    assert ma_trend(100.0, 100.0) is MATrend.DOWN


@pytest.mark.parametrize(
    ("close", "expected"),
    [(110.0, MAState.ABOVE), (90.0, MAState.BELOW), (100.0, MAState.EQUAL)],
)
def test_first_update_only_initializes(notifier, close, expected):
    strategy = MACrossStrategy(notifier)

    assert strategy.handle_update(update(close, 100.0)) is None

    pair = strategy.state("BTCUSDT", "4h")
    assert pair.state is expected
    assert pair.initialized_ms == T0
    assert pair.last_transition_ms is None
    assert notifier.messages == []


def test_init_announces_start(notifier):
    MACrossStrategy(notifier).init()

    assert notifier.messages == ["MA cross alert bot started"]


def test_warmup_period_covers_both_windows(notifier):
    assert MACrossStrategy(notifier).warmup_period == 201
    assert MACrossStrategy(notifier, ma_period=5, volume_period=8).warmup_period == 9


def test_same_bar_alerts_once(notifier):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(90.0, 100.0, T0))

    assert strategy.handle_update(update(110.0, 100.0, T0 + HOUR_MS)) is not None
    strategy.handle_update(update(90.0, 100.0, T0 + HOUR_MS))
    strategy.handle_update(update(110.0, 100.0, T0 + HOUR_MS))

    assert len(notifier.messages) == 1
    assert strategy.state("BTCUSDT", "4h").state is MAState.ABOVE


def test_cross_down_from_equal(notifier):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(100.0, 100.0, T0))

    alert = strategy.handle_update(update(99.0, 100.0, T0 + HOUR_MS))

    assert alert.signal is CrossSignal.CROSS_DOWN
    assert strategy.state("BTCUSDT", "4h").state is MAState.BELOW
    assert EMOJI_ARROW_DOWN in notifier.messages[0]


@pytest.mark.parametrize(
    ("previous_ma", "trend"),
    [(99.0, MATrend.UP), (101.0, MATrend.DOWN)],
)
def test_alert_trend(notifier, previous_ma, trend):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(90.0, 100.0, T0))

    alert = strategy.handle_update(update(105.0, 100.0, T0 + HOUR_MS, previous_ma=previous_ma))

    assert alert.trend is trend
    assert f"MA Trend: <b>{trend.value}</b>" in notifier.messages[0]


def test_btcusdt_walkthrough(notifier):
    strategy = MACrossStrategy(notifier)
    t1 = T0 + 4 * HOUR_MS
    t2 = T0 + 8 * HOUR_MS

    assert strategy.handle_update(update(33000.0, 33100.0, T0)) is None
    assert strategy.handle_update(update(33050.0, 33100.0, T0)) is None
    assert strategy.state("BTCUSDT", "4h").state is MAState.BELOW
    assert notifier.messages == []

    alert = strategy.handle_update(update(33100.0, 33100.0, T0))
    assert alert.signal is CrossSignal.CROSS_UP
    pair = strategy.state("BTCUSDT", "4h")
    assert pair.state is MAState.ABOVE
    assert pair.last_transition_ms == T0

    assert strategy.handle_update(update(33200.0, 33100.0, t1)) is None
    assert len(notifier.messages) == 1

    alert = strategy.handle_update(update(33000.0, 33100.0, t2))
    assert alert.signal is CrossSignal.CROSS_DOWN
    assert strategy.state("BTCUSDT", "4h").state is MAState.BELOW
    assert len(notifier.messages) == 2


def test_pairs_are_independent(notifier):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(90.0, 100.0, T0, symbol="BTCUSDT"))
    strategy.handle_update(update(110.0, 100.0, T0, symbol="ETHUSDT"))
    strategy.handle_update(update(90.0, 100.0, T0, symbol="BTCUSDT", timeframe="1h"))

    strategy.handle_update(update(110.0, 100.0, T0 + HOUR_MS, symbol="BTCUSDT"))

    states = {str(key): pair.state for key, pair in strategy.states().items()}
    assert states == {
        "BTCUSDT/4h": MAState.ABOVE,
        "ETHUSDT/4h": MAState.ABOVE,
        "BTCUSDT/1h": MAState.BELOW,
    }
    assert len(notifier.messages) == 1


def test_message_contents(notifier):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(90.0, 100.0, T0))

    strategy.handle_update(
        update(105.5, 100.0, T0 + HOUR_MS, previous_ma=99.0, volume=30.0, average_volume=10.0)
    )

    message = notifier.messages[0]
    assert message.startswith(EMOJI_ARROW_UP)
    assert "MA Cross" in message
    assert 'href="https://www.binance.com/en/trade/BTCUSDT"' in message
    assert "Timeframe 4h" in message
    assert "Last price: <b>105.5</b>" in message
    assert "Last MA200: <b>100</b>" in message
    assert "ratio <b>3.00x</b>" in message
    assert "2021-07-26T17:00:00+00:00" in message


def test_notifier_failure_does_not_propagate(caplog):
    strategy = MACrossStrategy(FailingNotifier())
    strategy.handle_update(update(90.0, 100.0, T0))

    alert = strategy.handle_update(update(110.0, 100.0, T0 + HOUR_MS))

    assert alert is not None
    assert strategy.state("BTCUSDT", "4h").state is MAState.ABOVE
    assert "notification_failed" in caplog.messages


def test_concurrent_evaluations_alert_once(notifier):
    strategy = MACrossStrategy(notifier)
    strategy.handle_update(update(90.0, 100.0, T0))
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        strategy.handle_update(update(110.0, 100.0, T0 + HOUR_MS))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(notifier.messages) == 1


def test_build_update_from_dataframe(notifier):
    strategy = MACrossStrategy(notifier, ma_period=5, volume_period=3)
    df = Dataframe("BTCUSDT", "1h")
    for index in range(5):
        df.append(make_candle(100.0, index=index, volume=10.0))
    df.append(make_candle(110.0, index=5, volume=30.0))

    result = strategy.build_update(df)

    assert result.time_ms == START_MS + 5 * HOUR_MS
    assert result.close == 110.0
    assert result.previous_ma == pytest.approx(100.0)
    assert result.last_ma == pytest.approx(102.0)
    assert result.average_volume == pytest.approx(10.0)
    assert result.volume_ratio == pytest.approx(3.0)


def test_on_candle_initializes_then_alerts(notifier):
    strategy = MACrossStrategy(notifier, ma_period=5, volume_period=3)
    df = Dataframe("BTCUSDT", "1h")
    for index, close in enumerate([100.0, 100.0, 100.0, 100.0, 100.0, 90.0]):
        df.append(make_candle(close, index=index))

    strategy.on_candle(df)
    assert strategy.state("BTCUSDT", "1h").state is MAState.BELOW

    df.append(make_candle(150.0, index=6))
    strategy.on_candle(df)

    assert strategy.state("BTCUSDT", "1h").state is MAState.ABOVE
    assert len(notifier.messages) == 1
