import time
from collections import deque
from typing import Callable, Deque

from ..log_utils import get_logger

logger = get_logger("rehab_motion.IdleTaskQueue")


class IdleTaskQueue:
    """Deferred work run in the slack left after a tick, not inside the tick itself."""

    def __init__(self, maxlen: int = 8, clock: Callable[[], float] = time.monotonic):
        # stale scoring jobs are dropped once the queue is full
        self._tasks: Deque[Callable[[], None]] = deque(maxlen=maxlen)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._tasks)

    def post(self, task: Callable[[], None]) -> None:
        self._tasks.append(task)

    def run_pending(self, budget: float) -> int:
        """Run queued tasks until ``budget`` seconds are spent; always runs at least one."""
        deadline = self._clock() + budget
        ran = 0
        while self._tasks:
            task = self._tasks.popleft()
            task()
            ran += 1
            if self._clock() >= deadline:
                break
        return ran

    def clear(self) -> None:
        self._tasks.clear()
