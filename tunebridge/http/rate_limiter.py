"""
Fixed-window rate limiter

A hard admission gate in front of outbound API calls. The window is fixed,
not sliding: once window_seconds have passed since the window opened, the
count resets wholesale. Rejection is immediate; there is no queueing here.
"""

import time
from typing import Callable, Optional

from ..utils.logger import get_logger


class RateLimiter:
    """
    Counts requests inside a fixed time window

    Attributes:
        max_requests: Ceiling of admitted requests per window
        window_seconds: Window length in seconds
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
        name: str = "default"
    ):
        """
        Initialize limiter with an empty window starting now

        Args:
            max_requests: Ceiling of admitted requests per window
            window_seconds: Window length in seconds
            clock: Callable returning the current time in seconds
            name: Label used in log messages
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self._clock = clock or time.time
        self.window_start = self._clock()
        self.count = 0
        self.logger = get_logger(__name__)

    def _roll_window(self, now: float) -> None:
        if now - self.window_start >= self.window_seconds:
            self.window_start = now
            self.count = 0

    def try_acquire(self) -> bool:
        """
        Admit one request if the window has room

        Returns:
            True if the request is admitted (and counted), False if rejected
        """
        self._roll_window(self._clock())

        if self.count >= self.max_requests:
            self.logger.debug(f"Rate limit reached for {self.name}: {self.count}/{self.max_requests}")
            return False

        self.count += 1
        return True

    def is_limited(self) -> bool:
        """True when the next try_acquire() would be rejected; consumes nothing"""
        self._roll_window(self._clock())
        return self.count >= self.max_requests

    @property
    def remaining(self) -> int:
        self._roll_window(self._clock())
        return max(0, self.max_requests - self.count)

    @property
    def retry_after(self) -> float:
        """Seconds until the current window rolls over"""
        return max(0.0, self.window_seconds - (self._clock() - self.window_start))

    def reset(self) -> None:
        self.window_start = self._clock()
        self.count = 0
