"""
Adaptive inter-request interval for the FIPE client.

FIPE enforces undocumented rate limits that change over time. The
controller backs off multiplicatively on HTTP 429 and creeps back toward
the configured floor after a run of successful requests:

    rate limited  -> interval = min(interval * 2, max)
    10 successes  -> interval = max(interval * 0.75, base)

The controller holds no timers; the client asks it how long to wait.
"""

from dataclasses import dataclass, field


@dataclass
class ThrottleController:
    base_interval_ms: float
    max_interval_ms: float
    success_threshold: int = 10
    decrease_factor: float = 0.75
    current_interval_ms: float = field(default=None)
    consecutive_successes: int = 0

    def __post_init__(self):
        if self.base_interval_ms < 0:
            raise ValueError("base_interval_ms must be >= 0")
        if self.max_interval_ms < self.base_interval_ms:
            raise ValueError("max_interval_ms must be >= base_interval_ms")
        if self.current_interval_ms is None:
            self.current_interval_ms = self.base_interval_ms
        self.current_interval_ms = self._clamp(self.current_interval_ms)

    def _clamp(self, value: float) -> float:
        return min(max(value, self.base_interval_ms), self.max_interval_ms)

    @property
    def interval_seconds(self) -> float:
        return self.current_interval_ms / 1000.0

    def on_rate_limited(self) -> float:
        """Double the interval (capped) and restart the success streak."""
        # A zero floor would never grow by doubling
        grown = self.current_interval_ms * 2 if self.current_interval_ms > 0 else 1.0
        self.current_interval_ms = self._clamp(grown)
        self.consecutive_successes = 0
        return self.current_interval_ms

    def on_success(self) -> float:
        """Count a success; shrink by 25% after a full streak above the floor."""
        self.consecutive_successes += 1
        if (
            self.consecutive_successes >= self.success_threshold
            and self.current_interval_ms > self.base_interval_ms
        ):
            self.current_interval_ms = self._clamp(self.current_interval_ms * self.decrease_factor)
            self.consecutive_successes = 0
        return self.current_interval_ms

    def reset(self):
        self.current_interval_ms = self.base_interval_ms
        self.consecutive_successes = 0
