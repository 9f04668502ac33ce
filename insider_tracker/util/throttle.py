from __future__ import annotations

import threading
import time
from typing import Callable


class Throttle:
    """Fixed minimum interval between requests (polite rate limiting).

    One instance is owned by a client and shared by all of its methods, so every
    outbound request passes the same "last request time" checkpoint.
    The clock and sleep functions are injectable so tests can assert pacing
    without real delays.
    """

    def __init__(
        self,
        min_interval_seconds: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval_seconds = float(min_interval_seconds or 0.0)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: float | None = None

    def wait(self) -> float:
        """Block until the next request is allowed. Returns the seconds slept."""
        if self.min_interval_seconds <= 0:
            return 0.0
        with self._lock:
            slept = 0.0
            if self._last_request is not None:
                dt = self._clock() - self._last_request
                if dt < self.min_interval_seconds:
                    slept = self.min_interval_seconds - dt
                    self._sleep(slept)
            self._last_request = self._clock()
            return slept
