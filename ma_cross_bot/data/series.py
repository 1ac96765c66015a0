"""Append-only float series with tail queries used by strategies."""

from collections.abc import Iterable, Sequence

from ma_cross_bot.core.errors import InsufficientDataError


class Series:
    """Ordered float samples; grows for the process lifetime, never shrinks."""

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float] = ()) -> None:
        self._values: list[float] = [float(value) for value in values]

    def append(self, value: float) -> None:
        self._values.append(float(value))

    def set_last(self, value: float) -> None:
        """Overwrite the newest sample in place."""

        if not self._values:
            raise InsufficientDataError("cannot update last value of an empty series")
        self._values[-1] = float(value)

    def last_values(self, count: int) -> list[float]:
        """Return the ``count`` newest values, oldest first."""

        if count <= 0 or len(self._values) < count:
            raise InsufficientDataError(
                f"requested {count} values, series holds {len(self._values)}"
            )
        return self._values[-count:]

    def last(self, offset: int = 0) -> float:
        """Return the value ``offset`` bars before the newest one."""

        if offset < 0 or offset >= len(self._values):
            raise InsufficientDataError(
                f"offset {offset} out of range for series of length {len(self._values)}"
            )
        return self._values[-1 - offset]

    def to_list(self) -> list[float]:
        return list(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Series(len={len(self._values)})"


def moving_average(values: Sequence[float], period: int) -> float:
    """Simple moving average over the last ``period`` values."""

    if period <= 0 or len(values) < period:
        raise InsufficientDataError(f"moving average of {period} needs {period} values, got {len(values)}")
    window = values[len(values) - period:]
    return sum(window) / float(period)
