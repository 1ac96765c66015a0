"""Strategy contract driven by the strategy controller."""

from abc import ABC, abstractmethod

from ma_cross_bot.data.dataframe import Dataframe


class Strategy(ABC):
    @abstractmethod
    def init(self) -> None:
        """Called once before any candle is delivered."""

    @property
    @abstractmethod
    def warmup_period(self) -> int:
        """Bars a dataframe must hold before ``on_candle`` is invoked."""

    @abstractmethod
    def on_candle(self, dataframe: Dataframe) -> None:
        ...
