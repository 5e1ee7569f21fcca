"""Bounded retry with randomized exponential backoff."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from .errors import WaveMigrateError

logger = logging.getLogger(__name__)

R = TypeVar("R")


class RetryableFailure(WaveMigrateError):
    """Raised by a retry body when another attempt may succeed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code="RETRYABLE")
        self.cause = cause


class PermanentFailure(WaveMigrateError):
    """Raised when no further attempts will be made."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code="PERMANENT")
        self.cause = cause


class RetryInterrupted(PermanentFailure):
    """The backoff sleep was interrupted; the interruption must reach the caller."""


# (num_retries, seconds_so_far, failure) -> seconds to sleep; raises PermanentFailure to stop.
RetryStrategy = Callable[[int, float, RetryableFailure], float]


class ExponentialBackoff:
    def __init__(
        self,
        start_delay: float,
        max_delay: float,
        max_total_time: float,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.start_delay = start_delay
        self.max_delay = max_delay
        self.max_total_time = max_total_time
        self.rng = rng or random.Random()

    def __call__(self, num_retries: int, elapsed: float, failure: RetryableFailure) -> float:
        ceiling = min(self.max_delay, self.start_delay * (2 ** num_retries))
        delay = self.rng.uniform(0, ceiling)
        if elapsed + delay >= self.max_total_time:
            raise PermanentFailure(
                f"Retry budget exceeded: elapsed={elapsed:.3f}s, next_delay={delay:.3f}s, "
                f"max_total_time={self.max_total_time:.3f}s",
                cause=failure,
            )
        return delay


def backoff_strategy(
    start_delay: float, max_delay: float, max_total_time: float
) -> RetryStrategy:
    return ExponentialBackoff(start_delay, max_delay, max_total_time)


def _no_retry(num_retries: int, elapsed: float, failure: RetryableFailure) -> float:
    raise PermanentFailure("Retryable failure with NO_RETRY strategy", cause=failure)


class RetryExecutor:
    """Runs a body until it succeeds or fails permanently.

    The body signals a transient problem by raising ``RetryableFailure`` and a
    fatal one by raising ``PermanentFailure`` (or any other exception, which is
    propagated untouched). Between attempts the executor sleeps for whatever the
    strategy returns.
    """

    def __init__(
        self,
        strategy: RetryStrategy,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.strategy = strategy
        self._sleep = sleep
        self._clock = clock

    def run(self, body: Callable[[], R], description: str = "") -> R:
        started = self._clock()
        retries = 0
        while True:
            try:
                return body()
            except RetryableFailure as failure:
                elapsed = self._clock() - started
                logger.warning(
                    "Problem on retry %d of %s, %.3fs elapsed so far: %s",
                    retries,
                    description or getattr(body, "__name__", "body"),
                    elapsed,
                    failure,
                )
                delay = self.strategy(retries, elapsed, failure)
                if delay < 0:
                    logger.warning("Negative delay %s from retry strategy", delay)
                    delay = 0.1
                logger.debug("Sleeping for %.3fs before retrying", delay)
                try:
                    self._sleep(delay)
                except KeyboardInterrupt as exc:
                    raise RetryInterrupted(
                        f"Interrupted while waiting to retry; {retries + 1} tries total, "
                        f"{self._clock() - started:.3f}s elapsed",
                        cause=exc,
                    ) from exc
                retries += 1


NO_RETRY = RetryExecutor(_no_retry)
