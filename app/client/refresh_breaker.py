"""
Client-side circuit breaker around session refresh.

At most `max_attempts` refresh calls are let through per cooldown window.
While one refresh is running, other callers wait on the same result instead
of issuing their own (single-flight). A successful refresh resets the
counter; otherwise it resets once the cooldown has elapsed since the first
attempt of the window.
"""

import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional, TypeVar

from app.core.errors import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshCircuitOpen(Exception):
    """Too many refresh attempts in the current window. Re-authenticate instead of retrying."""

    kind = ErrorKind.REFRESH_CIRCUIT_OPEN

    def __init__(self, retry_after: float = 0.0):
        super().__init__(f"session refresh circuit open, retry after {retry_after:.1f}s")
        self.retry_after = retry_after


class RefreshCircuitBreaker:
    def __init__(
        self,
        max_attempts: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._attempts = 0
        self._window_start: Optional[float] = None
        self._in_flight: Optional[Future] = None

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    def _roll_window(self, now: float) -> None:
        if self._window_start is not None and now - self._window_start >= self.cooldown_seconds:
            self._attempts = 0
            self._window_start = None

    def is_open(self) -> bool:
        with self._lock:
            self._roll_window(self._clock())
            return self._in_flight is None and self._attempts >= self.max_attempts

    def reset(self) -> None:
        with self._lock:
            self._attempts = 0
            self._window_start = None

    def call(self, refresh: Callable[[], T]) -> T:
        """
        Run `refresh` through the breaker.

        Raises:
            RefreshCircuitOpen: When the attempt budget of the window is spent
            Exception: Whatever `refresh` raised, also re-raised to callers
                that were waiting on the same in-flight attempt
        """
        with self._lock:
            shared = self._in_flight
            if shared is None:
                now = self._clock()
                self._roll_window(now)
                if self._attempts >= self.max_attempts:
                    retry_after = self.cooldown_seconds - (now - (self._window_start or now))
                    logger.warning("refresh circuit open after %d attempts", self._attempts)
                    raise RefreshCircuitOpen(max(0.0, retry_after))
                if self._window_start is None:
                    self._window_start = now
                self._attempts += 1
                future: Future = Future()
                self._in_flight = future

        if shared is not None:
            return shared.result()

        try:
            result = refresh()
        except BaseException as e:
            with self._lock:
                self._in_flight = None
            future.set_exception(e)
            raise

        with self._lock:
            self._in_flight = None
            self._attempts = 0
            self._window_start = None
        future.set_result(result)
        return result
