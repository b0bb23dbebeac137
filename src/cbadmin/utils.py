from threading import Lock
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Memoized(Generic[T]):
    """
    A value that is computed at most once.  Concurrent first callers block on
    a lock instead of each computing the value, and a failed computation leaves
    the value unset so that the next caller tries again.
    """

    @property
    def populated(self) -> bool:
        """Gets whether or not the value has been computed"""
        return self.__populated

    def __init__(self, factory: Callable[[], T]):
        self.__factory = factory
        self.__lock = Lock()
        self.__value: Optional[T] = None
        self.__populated = False

    def get(self) -> T:
        if self.__populated:
            return self.__value  # type: ignore[return-value]

        with self.__lock:
            if not self.__populated:
                self.__value = self.__factory()
                self.__populated = True

        return self.__value  # type: ignore[return-value]
