"""Outbound notification contract used by strategies."""

import logging
from abc import ABC, abstractmethod

EMOJI_ARROW_UP = "⬆"
EMOJI_ARROW_DOWN = "⬇"


class Notifier(ABC):
    """Fire-and-forget sink for formatted alert messages; must not raise."""

    @abstractmethod
    def notify(self, message: str) -> None:
        ...


class LogNotifier(Notifier):
    """Writes alerts to the log instead of a chat, used for backtests."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def notify(self, message: str) -> None:
        self._logger.info("notification", extra={"text": message})
