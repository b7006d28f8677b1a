import threading

import pytest

from classical_tagger.common import CancelledError
from classical_tagger.ratelimit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_burst_up_to_capacity() -> None:
    clock = FakeClock()
    limiter = RateLimiter(3, 3, clock=clock)
    assert [limiter.try_acquire() for _ in range(3)] == [0, 0, 0]
    assert limiter.try_acquire() == pytest.approx(1.0)
    clock.now += 0.25
    assert limiter.try_acquire() == pytest.approx(0.75)


def test_refill() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 2, clock=clock)
    limiter.try_acquire()
    limiter.try_acquire()
    clock.now += 1.5
    assert limiter.try_acquire() == 0
    assert limiter.tokens == 0
    # The half interval left over from the last refill counts towards the next token.
    clock.now += 0.5
    assert limiter.try_acquire() == 0


def test_refill_caps_at_capacity() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 2, clock=clock)
    limiter.try_acquire()
    clock.now += 100
    limiter.try_acquire()
    assert limiter.tokens == 1


def test_on_response_reanchors_refill() -> None:
    clock = FakeClock()
    limiter = RateLimiter(1, 1, clock=clock)
    assert limiter.try_acquire() == 0
    # A response that took 0.75 seconds to arrive pushes the next token back.
    clock.now += 0.75
    limiter.on_response()
    clock.now += 0.5
    assert limiter.try_acquire() == pytest.approx(0.5)
    clock.now += 0.5
    assert limiter.try_acquire() == 0


def test_wait_returns_when_token_available() -> None:
    limiter = RateLimiter(1, 60)
    limiter.wait()
    assert limiter.tokens == 0


def test_wait_cancelled() -> None:
    limiter = RateLimiter(1, 60)
    limiter.try_acquire()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(CancelledError):
        limiter.wait(cancel)


def test_wait_wakes_on_cancel() -> None:
    limiter = RateLimiter(1, 3600)
    limiter.try_acquire()
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    try:
        with pytest.raises(CancelledError):
            limiter.wait(cancel)
    finally:
        timer.cancel()


def test_invalid_parameters() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0, 1)
    with pytest.raises(ValueError):
        RateLimiter(1, 0)


def _grant_times(limiter: RateLimiter, clock: FakeClock, duration: float) -> list[float]:
    """Drive the limiter with a client that always wants another token."""
    start = clock.now
    grants: list[float] = []
    while clock.now - start < duration:
        while limiter.try_acquire() == 0:
            grants.append(clock.now - start)
        clock.now += 0.125
    return grants


@pytest.mark.parametrize(("capacity", "period"), [(3, 3), (4, 2), (2, 5)])
@pytest.mark.parametrize("periods", [1, 2, 5])
def test_grants_stay_within_rate(capacity: int, period: float, periods: int) -> None:
    clock = FakeClock()
    limiter = RateLimiter(capacity, period, clock=clock)
    grants = _grant_times(limiter, clock, 20 * period)
    window = periods * period
    allowed = capacity * window / period
    assert grants[:capacity] == [0.0] * capacity
    for start in grants:
        granted = sum(1 for t in grants if start <= t < start + window)
        # Only the initial burst may exceed the steady rate, and by at most one bucket.
        if start > 0:
            assert granted <= allowed
        else:
            assert granted <= allowed + capacity
