"""
The ratelimit module implements the leaky-bucket limiter shared by the HTTP clients.

The bucket holds up to `capacity` tokens and refills one token every `period / capacity` seconds.
Unlike an off-the-shelf limiter, the refill clock is re-anchored whenever a response arrives
(`on_response`), so a slow server pushes the next request back instead of letting a burst through.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from classical_tagger.common import check_cancelled

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(
        self,
        capacity: int,
        period: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0 or period <= 0:
            raise ValueError(f"capacity and period must be positive: got {capacity=} {period=}")
        self.capacity = capacity
        self.interval = period / capacity
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    @property
    def tokens(self) -> int:
        with self._lock:
            return self._tokens

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed < self.interval:
            return
        new_tokens = int(elapsed // self.interval)
        self._tokens = min(self.capacity, self._tokens + new_tokens)
        self._last_refill += new_tokens * self.interval

    def try_acquire(self) -> float:
        """Take a token if one is available and return 0. Otherwise return the seconds to wait."""
        with self._lock:
            now = self._clock()
            self._refill(now)
            if self._tokens > 0:
                self._tokens -= 1
                return 0.0
            return max(0.0, self.interval - (now - self._last_refill))

    def wait(self, cancel: threading.Event | None = None) -> None:
        """
        Block until a token is taken. Raises CancelledError if the cancellation event is set before
        then. The lock is never held while sleeping.
        """
        while True:
            check_cancelled(cancel)
            delay = self.try_acquire()
            if delay == 0:
                return
            logger.debug(f"Rate limited: waiting {delay:.2f}s for a token")
            if cancel is not None:
                cancel.wait(delay)
            else:
                time.sleep(delay)

    def on_response(self) -> None:
        """Anchor the refill clock to the arrival of the latest response."""
        with self._lock:
            self._last_refill = self._clock()
