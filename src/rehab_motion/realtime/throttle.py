from typing import Optional

from ..config_utils import load_pipeline_config

_THROTTLE_CONFIG = load_pipeline_config()["throttle"]


class AdaptiveInterval:
    """Target interval between periodic jobs, adjusted from the measured completion rate.

    Once per window the completions counted with ``record`` are turned into a
    per-second rate: a rate below ``low_rate`` lengthens the interval by
    ``step``, a rate above ``high_rate`` shortens it, within ``[minimum, maximum]``.
    All times are in seconds.
    """

    def __init__(
        self,
        initial: float = _THROTTLE_CONFIG["initial_interval_ms"] / 1000.0,
        step: float = _THROTTLE_CONFIG["step_ms"] / 1000.0,
        minimum: float = _THROTTLE_CONFIG["min_interval_ms"] / 1000.0,
        maximum: float = _THROTTLE_CONFIG["max_interval_ms"] / 1000.0,
        low_rate: float = _THROTTLE_CONFIG["low_rate"],
        high_rate: float = _THROTTLE_CONFIG["high_rate"],
        window: float = _THROTTLE_CONFIG["window_ms"] / 1000.0,
    ):
        self.interval = initial
        self.step = step
        self.minimum = minimum
        self.maximum = maximum
        self.low_rate = low_rate
        self.high_rate = high_rate
        self.window = window
        self.rate: Optional[float] = None
        self._count = 0
        self._window_start: Optional[float] = None

    def record(self) -> None:
        self._count += 1

    def update(self, now: float) -> Optional[float]:
        """Recalculate the interval if a full window has elapsed. Returns the new rate, if any."""
        if self._window_start is None:
            self._window_start = now
            return None
        elapsed = now - self._window_start
        if elapsed < self.window:
            return None
        self.rate = self._count / elapsed
        if self.rate < self.low_rate:
            self.interval = min(round(self.interval + self.step, 6), self.maximum)
        elif self.rate > self.high_rate:
            self.interval = max(round(self.interval - self.step, 6), self.minimum)
        self._count = 0
        self._window_start = now
        return self.rate

    def due(self, now: float, last: Optional[float]) -> bool:
        return last is None or now - last >= self.interval
