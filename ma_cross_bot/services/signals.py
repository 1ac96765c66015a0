"""SIGINT/SIGTERM handling that turns process signals into the shared shutdown event."""

import asyncio
import logging
import signal

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_signal_handlers(
    shutdown_event: asyncio.Event, logger: logging.Logger, service: str
) -> tuple[str, ...]:
    """Set ``shutdown_event`` on the first shutdown signal; returns the handled signal names."""

    loop = asyncio.get_running_loop()

    def request_shutdown(signal_name: str) -> None:
        if shutdown_event.is_set():
            logger.warning(
                "shutdown_already_requested", extra={"service": service, "signal": signal_name}
            )
            return
        logger.info("shutdown_requested", extra={"service": service, "signal": signal_name})
        shutdown_event.set()

    handled = []
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, request_shutdown, sig.name)
        except NotImplementedError:
            # no loop signal support (Windows): hop back onto the loop from the handler
            signal.signal(
                sig,
                lambda _signum, _frame, name=sig.name: loop.call_soon_threadsafe(
                    request_shutdown, name
                ),
            )
        handled.append(sig.name)
    return tuple(handled)
