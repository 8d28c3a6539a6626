"""Retry policies for provider calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from thread_memory.core.errors import ProviderUnavailable
from thread_memory.core.metrics import PROVIDER_RETRIES

T = TypeVar("T")


class RetryPolicy:
    """Bounded, jittered exponential backoff for ``ProviderUnavailable``."""

    def __init__(
        self,
        max_attempts: int,
        initial: float = 0.5,
        maximum: float = 8.0,
        jitter: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial = initial
        self.maximum = maximum
        self.jitter = jitter
        self.sleep = sleep

    def call(self, fn: Callable[..., T], *args, operation: str, logger: logging.Logger, **kwargs) -> T:
        """Invoke ``fn`` and retry it while it raises ``ProviderUnavailable``."""

        def _before_sleep(state: RetryCallState) -> None:
            PROVIDER_RETRIES.labels(operation=operation).inc()
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "%s failed (attempt %s/%s): %s; retrying",
                operation,
                state.attempt_number,
                self.max_attempts,
                exc,
            )

        retrying = Retrying(
            retry=retry_if_exception_type(ProviderUnavailable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.initial, max=self.maximum) + wait_random(0, self.jitter),
            before_sleep=_before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)


__all__ = ["RetryPolicy"]
