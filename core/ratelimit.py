import time
import threading
from collections import deque

from agent.errors import RateLimitExceeded


class RateLimiter:
    """Rolling-window limiter: at most `calls` acquisitions in any `period` seconds."""

    def __init__(self, calls: int, period: float, clock=time.monotonic):
        self.calls = calls
        self.period = period
        self.clock = clock
        self.stamps = deque()
        self.lock = threading.Lock()

    def _evict(self, now: float):
        while self.stamps and now - self.stamps[0] >= self.period:
            self.stamps.popleft()

    def remaining(self) -> int:
        with self.lock:
            self._evict(self.clock())
            return self.calls - len(self.stamps)

    def acquire(self):
        with self.lock:
            now = self.clock()
            self._evict(now)
            if len(self.stamps) >= self.calls:
                retry_in = self.period - (now - self.stamps[0]) if self.stamps else self.period
                raise RateLimitExceeded(
                    f"Rate limit exceeded. Please try again in {retry_in:.0f}s."
                )
            self.stamps.append(now)
            return True

# Global limiter instance
from .config import settings
limiter = RateLimiter(calls=settings.RATE_LIMIT_CALLS, period=settings.RATE_LIMIT_PERIOD)
