"""Tests for the provider retry policy."""

from __future__ import annotations

import logging
import warnings

import pytest

from thread_memory.core.errors import InvalidInput, ProviderUnavailable
from thread_memory.core.retry import RetryPolicy

logger = logging.getLogger("thread_memory.tests.retry")


class Flaky:
    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or ProviderUnavailable("down")
        self.calls = 0

    def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


def test_backoff_doubles_up_to_the_cap() -> None:
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=4, initial=0.5, maximum=1.5, jitter=0.0, sleep=sleeps.append)
    fn = Flaky(failures=3)
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        assert policy.call(fn, "ok", operation="embed", logger=logger) == "ok"
    assert fn.calls == 4
    assert sleeps == [0.5, 1.0, 1.5]


def test_jitter_stays_within_bounds() -> None:
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=3, initial=1.0, maximum=8.0, jitter=0.25, sleep=sleeps.append)
    with pytest.raises(ProviderUnavailable):
        policy.call(Flaky(failures=5), "never", operation="complete", logger=logger)
    assert len(sleeps) == 2
    assert 1.0 <= sleeps[0] <= 1.25
    assert 2.0 <= sleeps[1] <= 2.25


def test_other_errors_are_not_retried() -> None:
    sleeps: list[float] = []
    fn = Flaky(failures=1, error=InvalidInput("empty"))
    with pytest.raises(InvalidInput):
        RetryPolicy(max_attempts=3, sleep=sleeps.append).call(fn, "x", operation="embed", logger=logger)
    assert fn.calls == 1
    assert sleeps == []


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
