"""Throttle pacing with an injected clock (no real sleeping)."""

from conftest import FakeClock

from insider_tracker.util.throttle import Throttle


def test_first_request_does_not_wait():
    clock = FakeClock()
    t = Throttle(0.5, clock=clock, sleep=clock.sleep)
    assert t.wait() == 0.0
    assert clock.sleeps == []


def test_back_to_back_requests_are_spaced():
    clock = FakeClock()
    t = Throttle(0.5, clock=clock, sleep=clock.sleep)
    t.wait()
    clock.now += 0.2
    slept = t.wait()
    assert abs(slept - 0.3) < 1e-9
    assert len(clock.sleeps) == 1


def test_no_wait_once_interval_has_passed():
    clock = FakeClock()
    t = Throttle(0.5, clock=clock, sleep=clock.sleep)
    t.wait()
    clock.now += 2.0
    assert t.wait() == 0.0
    assert clock.sleeps == []


def test_zero_interval_never_sleeps():
    clock = FakeClock()
    t = Throttle(0, clock=clock, sleep=clock.sleep)
    for _ in range(5):
        t.wait()
    assert clock.sleeps == []
