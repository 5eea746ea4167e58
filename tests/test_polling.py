from __future__ import annotations

from collections import deque

import pytest

from s3_lifecycle_operator.errors import OperationTimeoutError, StabilizationTimeout
from s3_lifecycle_operator.utils.polling import Deadline, poll_until, poll_until_stable, retry_on_codes

from .conftest import FakeClock, client_error


def scripted(*outcomes):
    queue = deque(outcomes)
    calls = []

    def read():
        calls.append(1)
        outcome = queue.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    read.calls = calls
    return read


def test_poll_until_stable_returns_after_two_equal_reads(clock: FakeClock) -> None:
    read = scripted(["r1"], ["r2"], ["r2"], ["never"])

    value = poll_until_stable(read, interval=5, timeout=60, clock=clock, sleep=clock.sleep)

    assert value == ["r2"]
    assert len(read.calls) == 3
    # every read is preceded by the interval wait
    assert clock.sleeps == [5, 5, 5]


def test_poll_until_stable_never_accepts_a_single_read(clock: FakeClock) -> None:
    read = scripted("a", "b", "a", "b", "a", "b")

    with pytest.raises(StabilizationTimeout) as excinfo:
        poll_until_stable(read, interval=5, timeout=20, clock=clock, sleep=clock.sleep)

    assert excinfo.value.attempts == 4
    assert excinfo.value.last_value == "b"


def test_poll_until_stable_uses_custom_equality(clock: FakeClock) -> None:
    read = scripted([2, 1], [1, 2])

    value = poll_until_stable(
        read, lambda a, b: sorted(a) == sorted(b), interval=1, timeout=10, clock=clock, sleep=clock.sleep
    )

    assert value == [1, 2]


def test_retryable_errors_reset_the_comparison(clock: FakeClock) -> None:
    not_found = client_error("NoSuchLifecycleConfiguration")
    read = scripted("x", not_found, "x", "x")

    value = poll_until_stable(
        read,
        interval=1,
        timeout=60,
        retryable=lambda e: e is not_found,
        clock=clock,
        sleep=clock.sleep,
    )

    assert value == "x"
    assert len(read.calls) == 4


def test_non_retryable_errors_propagate(clock: FakeClock) -> None:
    read = scripted(client_error("AccessDenied"))

    with pytest.raises(Exception) as excinfo:
        poll_until_stable(read, interval=1, timeout=60, retryable=lambda e: False, clock=clock, sleep=clock.sleep)

    assert excinfo.value.response["Error"]["Code"] == "AccessDenied"


def test_timeout_keeps_the_last_retryable_error(clock: FakeClock) -> None:
    error = client_error("NoSuchBucket")
    read = scripted(error, error, error)

    with pytest.raises(StabilizationTimeout) as excinfo:
        poll_until_stable(read, interval=5, timeout=10, retryable=lambda e: True, clock=clock, sleep=clock.sleep)

    assert excinfo.value.last_error is error
    assert excinfo.value.last_value is None


def test_cancelled_deadline_stops_polling(clock: FakeClock) -> None:
    deadline = Deadline(600, clock=clock)
    read = scripted("a", "b")
    deadline.cancel()

    with pytest.raises(OperationTimeoutError) as excinfo:
        poll_until_stable(read, interval=1, timeout=60, deadline=deadline, clock=clock, sleep=clock.sleep)

    assert excinfo.value.cancelled
    assert read.calls == []


def test_expired_deadline_stops_polling_before_the_next_read(clock: FakeClock) -> None:
    deadline = Deadline(7, clock=clock)
    read = scripted("a", "b", "c")

    with pytest.raises(OperationTimeoutError) as excinfo:
        poll_until_stable(read, interval=5, timeout=60, deadline=deadline, clock=clock, sleep=clock.sleep)

    assert not excinfo.value.cancelled
    assert len(read.calls) == 1


def test_deadline_without_timeout_never_expires(clock: FakeClock) -> None:
    deadline = Deadline(None, clock=clock)
    clock.now = 10_000
    assert deadline.remaining() is None
    assert not deadline.expired
    deadline.check()


def test_poll_until_requires_a_continuous_streak(clock: FakeClock) -> None:
    read = scripted(1, 2, 1, 2, 2, 9)

    value = poll_until(read, lambda v: v == 2, interval=10, timeout=600, continuous_target=2, clock=clock, sleep=clock.sleep)

    assert value == 2
    assert len(read.calls) == 5
    assert clock.sleeps == [10, 10, 10, 10]


def test_poll_until_times_out(clock: FakeClock) -> None:
    read = scripted(*([False] * 10))

    with pytest.raises(StabilizationTimeout):
        poll_until(read, bool, interval=10, timeout=30, clock=clock, sleep=clock.sleep)

    assert len(read.calls) == 4


def test_retry_on_codes_backs_off_until_success(clock: FakeClock) -> None:
    fn = scripted(client_error("NoSuchBucket"), client_error("NoSuchBucket"), client_error("NoSuchBucket"), "ok")

    result = retry_on_codes(fn, ["NoSuchBucket"], timeout=60, min_delay=1, max_delay=3, clock=clock, sleep=clock.sleep)

    assert result == "ok"
    assert clock.sleeps == [1, 2, 3]


def test_retry_on_codes_reraises_other_codes_immediately(clock: FakeClock) -> None:
    fn = scripted(client_error("AccessDenied"), "ok")

    with pytest.raises(Exception) as excinfo:
        retry_on_codes(fn, ["NoSuchBucket"], timeout=60, clock=clock, sleep=clock.sleep)

    assert excinfo.value.response["Error"]["Code"] == "AccessDenied"
    assert clock.sleeps == []


def test_retry_on_codes_gives_up_after_timeout(clock: FakeClock) -> None:
    fn = scripted(*[client_error("NoSuchLifecycleConfiguration") for _ in range(20)])

    with pytest.raises(Exception) as excinfo:
        retry_on_codes(
            fn, ["NoSuchLifecycleConfiguration"], timeout=10, min_delay=1, max_delay=4, clock=clock, sleep=clock.sleep
        )

    assert excinfo.value.response["Error"]["Code"] == "NoSuchLifecycleConfiguration"
    assert clock.now == 10
