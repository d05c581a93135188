import time
from dataclasses import dataclass


class Clock:
    """Knows how to get the current time as a Unix timestamp."""

    def now(self) -> float:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()


@dataclass
class FixedClock(Clock):
    """A clock frozen at `current_time`. Used to fake out timing in tests."""
    current_time: float = 0.0

    def now(self) -> float:
        return self.current_time

    def advance(self, seconds: float) -> None:
        self.current_time += seconds
