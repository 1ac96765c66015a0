"""Tests for turning process signals into the shutdown event."""

import asyncio
import logging
import signal

import pytest

from ma_cross_bot.services.signals import SHUTDOWN_SIGNALS, install_signal_handlers


@pytest.mark.asyncio
async def test_sigterm_sets_shutdown_event(caplog) -> None:
    caplog.set_level(logging.INFO)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    handled = install_signal_handlers(
        shutdown_event, logging.getLogger("tests.signals"), service="alerter"
    )
    try:
        assert handled == ("SIGINT", "SIGTERM")

        signal.raise_signal(signal.SIGTERM)
        await asyncio.wait_for(shutdown_event.wait(), timeout=1.0)

        signal.raise_signal(signal.SIGTERM)
        await asyncio.sleep(0.01)
    finally:
        for sig in SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)

    assert caplog.messages.count("shutdown_requested") == 1
    assert "shutdown_already_requested" in caplog.messages
    record = next(item for item in caplog.records if item.getMessage() == "shutdown_requested")
    assert (record.service, record.signal) == ("alerter", "SIGTERM")
