from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class LatestValueChannel(Generic[T]):
    """Single-publisher, latest-value cell shared between the inference and render loops.

    Readers always see the most recent published value; intermediate values
    may be skipped. Both loops run on one event-loop thread, so no locking.
    """

    def __init__(self, initial: Optional[T] = None):
        self._value = initial
        self._version = 0

    def publish(self, value: T) -> int:
        self._value = value
        self._version += 1
        return self._version

    def latest(self) -> Optional[T]:
        return self._value

    def snapshot(self) -> Tuple[int, Optional[T]]:
        return self._version, self._value

    @property
    def version(self) -> int:
        return self._version
