import time
from datetime import timedelta
from typing import Callable


class TimeoutGuard:
    """
    Time budget for one scan run.

    Only consulted between page audits: an audit already in flight is never
    interrupted through this object.
    """

    def __init__(self, duration_hours: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start = clock()
        self._duration_seconds = duration_hours * 3600

    def expired(self) -> bool:
        return self.elapsed_seconds() >= self._duration_seconds

    def elapsed_seconds(self) -> float:
        return self._clock() - self._start

    def elapsed(self) -> timedelta:
        return timedelta(seconds=self.elapsed_seconds())

    def remaining(self) -> timedelta:
        return timedelta(seconds=max(0.0, self._duration_seconds - self.elapsed_seconds()))

    def elapsed_formatted(self) -> str:
        """Elapsed time as HH:MM:SS."""
        seconds = int(self.elapsed_seconds())
        hours, seconds = divmod(seconds, 3600)
        minutes, seconds = divmod(seconds, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
