"""Retry and polling primitives built on tenacity.

:class:`RetryPolicy` is the single retry decorator applied to every
network-bound pipeline stage; :func:`poll_until_complete` is the bounded
polling loop used for asynchronous document analysis.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from tenant_rag.config import settings
from tenant_rag.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = ["PollTimeout", "RetryPolicy", "poll_until_complete"]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential-backoff retry for transient failures.

    Attributes
    ----------
    max_retries:
        Retries after the first attempt (``3`` means up to four calls).
    base_delay:
        Delay in seconds before the first retry.
    backoff_rate:
        Multiplier applied to the delay after each retry.
    max_delay:
        Ceiling for a single delay.
    retryable:
        Predicate deciding whether an exception is worth retrying.
    """

    max_retries: int = 3
    base_delay: float = 2.0
    backoff_rate: float = 2.0
    max_delay: float = 60.0
    retryable: Callable[[BaseException], bool] = is_transient

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_retries=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            backoff_rate=settings.retry_backoff_rate,
            max_delay=settings.retry_max_delay,
        )

    def __call__(self, fn: Callable[..., T]) -> Callable[..., T]:
        """Wrap *fn*; the last exception is re-raised once retries run out."""
        return retry(
            retry=retry_if_exception(self.retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.base_delay,
                exp_base=self.backoff_rate,
                min=self.base_delay,
                max=self.max_delay,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(fn)

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke *fn* under this policy."""
        return self(fn)(*args, **kwargs)


class PollTimeout(Exception):
    """Raised by :func:`poll_until_complete` when attempts are exhausted."""

    def __init__(self, attempts: int, last_result: Any = None) -> None:
        super().__init__(f"Still pending after {attempts} attempt(s)")
        self.attempts = attempts
        self.last_result = last_result


def poll_until_complete(
    check: Callable[[], T],
    is_pending: Callable[[T], bool],
    *,
    interval: float = settings.document_poll_interval,
    max_attempts: int = settings.document_poll_max_attempts,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *check* until *is_pending* is false for its result.

    Parameters
    ----------
    check:
        Zero-argument status probe.
    is_pending:
        Returns ``True`` while the probed job is still running.
    interval:
        Fixed delay between probes in seconds.
    max_attempts:
        Upper bound on the number of probes.

    Returns
    -------
    T
        The first non-pending result.

    Raises
    ------
    PollTimeout
        When every attempt returned a pending result.
    """
    retrying = Retrying(
        retry=retry_if_result(is_pending),
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        sleep=sleep,
    )
    try:
        return retrying(check)
    except RetryError as exc:
        raise PollTimeout(max_attempts, exc.last_attempt.result()) from exc
