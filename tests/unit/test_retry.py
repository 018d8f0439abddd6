"""Unit tests for the retry combinator."""

from typing import List

import pytest

from estate_deployments.exceptions import RetryExhaustedError
from estate_deployments.retry import RetryPolicy, retry_call


class Flaky:
    """Fails `failures` times with `error`, then returns "ok"."""

    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def always(exc: BaseException) -> bool:
    return True


def never(exc: BaseException) -> bool:
    return False


class TestRetryCall:
    """Test the retry_call function."""

    def test_returns_first_success_without_sleeping(self):
        sleeps: List[float] = []
        fn = Flaky(0, RuntimeError("boom"))

        assert retry_call(fn, RetryPolicy(3, 5.0), always, sleep=sleeps.append) == "ok"
        assert fn.calls == 1
        assert sleeps == []

    def test_retries_until_success(self):
        sleeps: List[float] = []
        fn = Flaky(2, RuntimeError("boom"))

        assert retry_call(fn, RetryPolicy(3, 5.0), always, sleep=sleeps.append) == "ok"
        assert fn.calls == 3
        assert sleeps == [5.0, 5.0]

    def test_raises_exhausted_after_max_attempts(self):
        sleeps: List[float] = []
        error = RuntimeError("still down")
        fn = Flaky(10, error)

        with pytest.raises(RetryExhaustedError) as exc_info:
            retry_call(fn, RetryPolicy(3, 1.0), always, sleep=sleeps.append)

        assert fn.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error
        assert exc_info.value.__cause__ is error
        # no sleep after the final attempt
        assert len(sleeps) == 2

    def test_non_retryable_error_is_raised_immediately(self):
        sleeps: List[float] = []
        fn = Flaky(10, KeyError("permanent"))

        with pytest.raises(KeyError):
            retry_call(fn, RetryPolicy(5, 1.0), never, sleep=sleeps.append)

        assert fn.calls == 1
        assert sleeps == []

    def test_single_attempt_policy_never_sleeps(self):
        sleeps: List[float] = []

        with pytest.raises(RetryExhaustedError):
            retry_call(Flaky(1, RuntimeError("x")), RetryPolicy(1, 9.0), always, sleep=sleeps.append)

        assert sleeps == []

    def test_on_retry_receives_attempt_and_error(self):
        seen = []
        error = RuntimeError("flaky")

        retry_call(
            Flaky(2, error),
            RetryPolicy(3, 0.0),
            always,
            sleep=lambda s: None,
            on_retry=lambda attempt, exc: seen.append((attempt, exc)),
        )

        assert seen == [(1, error), (2, error)]

    def test_backoff_multiplies_delay(self):
        sleeps: List[float] = []

        retry_call(Flaky(3, RuntimeError("x")), RetryPolicy(4, 1.0, backoff=2.0), always, sleep=sleeps.append)

        assert sleeps == [1.0, 2.0, 4.0]


class TestRetryPolicy:
    """Test RetryPolicy validation."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_rejects_negative_delay(self):
        with pytest.raises(ValueError):
            RetryPolicy(delay_s=-1)

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.delay_s == 5.0
        assert policy.delay_for(1) == 5.0
