import threading
import time

import pytest

from app.client.refresh_breaker import RefreshCircuitBreaker, RefreshCircuitOpen
from app.core.errors import ErrorCategory


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def failing():
    raise RuntimeError("refresh rejected")


@pytest.fixture
def timer() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def breaker(timer: FakeMonotonic) -> RefreshCircuitBreaker:
    return RefreshCircuitBreaker(max_attempts=3, cooldown_seconds=30, clock=timer)


class TestRefreshCircuitBreaker:
    def test_success_passes_through(self, breaker: RefreshCircuitBreaker):
        assert breaker.call(lambda: "token") == "token"
        assert breaker.attempts == 0

    def test_opens_after_three_failures(self, breaker: RefreshCircuitBreaker, timer: FakeMonotonic):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(failing)
            timer.now += 1

        calls = []
        with pytest.raises(RefreshCircuitOpen) as exc_info:
            breaker.call(lambda: calls.append(1))
        assert calls == []
        assert exc_info.value.retry_after == pytest.approx(27)
        assert exc_info.value.kind.category is ErrorCategory.CIRCUIT_OPEN
        assert breaker.is_open() is True

    def test_resets_after_cooldown(self, breaker: RefreshCircuitBreaker, timer: FakeMonotonic):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(failing)

        timer.now = 29.9
        with pytest.raises(RefreshCircuitOpen):
            breaker.call(lambda: "token")

        timer.now = 30.0
        assert breaker.is_open() is False
        assert breaker.call(lambda: "token") == "token"

    def test_success_resets_counter(self, breaker: RefreshCircuitBreaker):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(failing)
        assert breaker.attempts == 2

        breaker.call(lambda: "token")
        assert breaker.attempts == 0

        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(failing)
        assert breaker.is_open() is False

    def test_manual_reset(self, breaker: RefreshCircuitBreaker):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(failing)
        breaker.reset()
        assert breaker.call(lambda: "token") == "token"

    def test_single_flight(self):
        breaker = RefreshCircuitBreaker(max_attempts=3, cooldown_seconds=30)
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_refresh():
            calls.append(1)
            started.set()
            release.wait(5)
            return "new-token"

        results = []

        def caller():
            results.append(breaker.call(slow_refresh))

        first = threading.Thread(target=caller)
        first.start()
        started.wait(5)

        waiters = [threading.Thread(target=caller) for _ in range(4)]
        for t in waiters:
            t.start()
        # give the waiters time to attach to the in-flight refresh
        time.sleep(0.1)
        release.set()

        for t in [first, *waiters]:
            t.join(5)

        assert calls == [1]
        assert results == ["new-token"] * 5

    def test_single_flight_shares_failure(self):
        breaker = RefreshCircuitBreaker(max_attempts=3, cooldown_seconds=30)
        started = threading.Event()
        release = threading.Event()
        errors = []

        def slow_failure():
            started.set()
            release.wait(5)
            raise RuntimeError("expired")

        def caller():
            try:
                breaker.call(slow_failure)
            except RuntimeError as e:
                errors.append(str(e))

        first = threading.Thread(target=caller)
        first.start()
        started.wait(5)
        second = threading.Thread(target=caller)
        second.start()
        time.sleep(0.1)
        release.set()
        first.join(5)
        second.join(5)

        assert errors == ["expired", "expired"]
        assert breaker.attempts == 1
