import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """
    The source of time for all of the polling loops in this package.  Swapping it
    out lets a rebalance or a health wait run without actually sleeping.
    """

    @abstractmethod
    def now(self) -> float:
        """Gets a monotonic timestamp, in seconds"""
        pass

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Blocks the caller for the given number of seconds"""
        pass


class SystemClock(Clock):
    """A :class:`Clock` backed by the real monotonic clock"""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
