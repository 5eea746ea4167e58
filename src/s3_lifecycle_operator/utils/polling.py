"""Deadline, polling and retry helpers for eventually-consistent remote APIs.

Nothing in here knows about S3: reads are plain callables and time is
injectable (``clock`` / ``sleep``) so the loops can be driven by a fake clock.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, TypeVar

from botocore.exceptions import ClientError

from ..errors import OperationTimeoutError, StabilizationTimeout, is_error_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class Deadline:
    """Overall time budget for one operation, cancellable from another thread."""

    def __init__(
        self,
        timeout: float | None,
        clock: Callable[[], float] = time.monotonic,
        event: threading.Event | None = None,
    ) -> None:
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout
        self._event = event or threading.Event()

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return self.cancelled or (remaining is not None and remaining <= 0)

    def cancel(self) -> None:
        self._event.set()

    def check(self) -> None:
        """Raise OperationTimeoutError if the deadline has passed or was cancelled."""
        if self.cancelled:
            raise OperationTimeoutError("operation cancelled", cancelled=True)
        if self.expired:
            raise OperationTimeoutError()

    def sleep(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early (and raising) on cancellation or expiry."""
        remaining = self.remaining()
        wait = seconds if remaining is None else min(seconds, remaining)
        if wait > 0:
            self._event.wait(wait)
        if self.cancelled or (remaining is not None and remaining < seconds):
            self.check()


def _sleeper(deadline: Deadline | None, sleep: Callable[[float], None] | None) -> Callable[[float], None]:
    if sleep is not None:
        return sleep
    if deadline is not None:
        return deadline.sleep
    return time.sleep


def poll_until_stable(
    read_fn: Callable[[], T],
    equal_fn: Callable[[T, T], bool] | None = None,
    *,
    interval: float,
    timeout: float,
    retryable: Callable[[Exception], bool] | None = None,
    deadline: Deadline | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Read repeatedly until two consecutive reads are equal.

    Every attempt is preceded by a ``interval`` wait, so reads are at least that
    far apart. A read that differs from the previous one is not a success; it
    becomes the value the next read is compared against. Exceptions accepted by
    ``retryable`` reset the comparison and are retried; any other exception
    propagates immediately.

    Returns:
        The value of the second of the two equal reads

    Raises:
        StabilizationTimeout: If ``timeout`` elapsed without two equal reads
        OperationTimeoutError: If ``deadline`` expired or was cancelled
    """
    equal_fn = equal_fn or (lambda a, b: a == b)
    sleep_fn = _sleeper(deadline, sleep)
    started = clock()
    previous: Any = _MISSING
    last_error: Exception | None = None
    attempts = 0

    while True:
        if deadline is not None:
            deadline.check()
        sleep_fn(interval)
        if deadline is not None:
            deadline.check()

        attempts += 1
        try:
            current = read_fn()
        except Exception as e:
            if retryable is None or not retryable(e):
                raise
            logger.debug("Retryable error on attempt %d: %s", attempts, e)
            last_error = e
            previous = _MISSING
        else:
            last_error = None
            if previous is not _MISSING and equal_fn(previous, current):
                logger.debug("Stable after %d attempt(s)", attempts)
                return current
            previous = current

        if clock() - started >= timeout:
            raise StabilizationTimeout(
                attempts,
                timeout,
                last_value=None if previous is _MISSING else previous,
                last_error=last_error,
            )


def poll_until(
    read_fn: Callable[[], T],
    predicate: Callable[[T], bool],
    *,
    interval: float,
    timeout: float,
    continuous_target: int = 1,
    retryable: Callable[[Exception], bool] | None = None,
    deadline: Deadline | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Read until ``predicate`` holds on ``continuous_target`` consecutive reads.

    Raises:
        StabilizationTimeout: If ``timeout`` elapsed first
        OperationTimeoutError: If ``deadline`` expired or was cancelled
    """
    sleep_fn = _sleeper(deadline, sleep)
    started = clock()
    streak = 0
    attempts = 0
    last_value: Any = None
    last_error: Exception | None = None

    while True:
        if deadline is not None:
            deadline.check()

        attempts += 1
        try:
            last_value = read_fn()
        except Exception as e:
            if retryable is None or not retryable(e):
                raise
            last_error = e
            streak = 0
        else:
            last_error = None
            streak = streak + 1 if predicate(last_value) else 0
            if streak >= continuous_target:
                return last_value

        if clock() - started >= timeout:
            raise StabilizationTimeout(attempts, timeout, last_value=last_value, last_error=last_error)
        sleep_fn(interval)


def retry_on_codes(
    fn: Callable[[], T],
    codes: Iterable[str],
    *,
    timeout: float,
    min_delay: float = 1.0,
    max_delay: float = 10.0,
    deadline: Deadline | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Call ``fn``, retrying with exponential backoff while it fails with one of ``codes``.

    Once ``timeout`` has elapsed the last matching ClientError is re-raised.
    Errors with other codes propagate immediately.
    """
    codes = tuple(codes)
    sleep_fn = _sleeper(deadline, sleep)
    started = clock()
    delay = min_delay
    attempt = 0

    while True:
        if deadline is not None:
            deadline.check()
        attempt += 1
        try:
            return fn()
        except ClientError as e:
            if not is_error_code(e, *codes):
                raise
            elapsed = clock() - started
            if elapsed >= timeout:
                raise
            logger.info("Retrying after %s (attempt %d)", e.response.get("Error", {}).get("Code"), attempt)
            sleep_fn(min(delay, max(timeout - elapsed, 0.0)))
            delay = min(delay * 2, max_delay)
