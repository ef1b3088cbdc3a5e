"""Backoff for idempotent store reads.

A read that hits a dropped connection is retried a couple of times with
exponential backoff and jitter. Writes (appends, registrations, presence
updates) are never wrapped: replaying one could double-post a message, so a
failure there surfaces immediately as ``BackingStoreError``.

    @retry_async(SQL_READ_RETRY_POLICY)
    async def fetch_messages(...):
        ...
"""
from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

from chatr.observability import global_metrics

logger = logging.getLogger("chatr.resilience")

RetryCallback = Callable[[Exception, int, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying).
        base_delay: Seconds before the first retry.
        max_delay: Ceiling for the exponential part of the delay.
        backoff_factor: Growth per attempt.
        jitter: Up to this many random seconds added to every delay.
        retryable_exceptions: Only these are retried; anything else propagates.
    """
    max_retries: int = 2
    base_delay: float = 0.1
    max_delay: float = 2.0
    backoff_factor: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: Tuple[Type[Exception], ...] = (ConnectionError, TimeoutError, OSError)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1`` (``attempt`` counts from 0)."""
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay


STORE_RETRY_POLICY = RetryPolicy()


def retry_async(policy: Optional[RetryPolicy] = None, *, on_retry: Optional[RetryCallback] = None):
    """Decorate an async read so transient failures are retried.

    ``on_retry(exc, attempt, delay)`` is called before each sleep; attempts
    are numbered from 1. The last failure is re-raised unchanged.
    """
    policy = policy or STORE_RETRY_POLICY

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except policy.retryable_exceptions as exc:
                    if attempt >= policy.max_retries:
                        if policy.max_retries:
                            logger.error(
                                "%s failed after %d retries: %s",
                                func.__qualname__, policy.max_retries, exc,
                            )
                        raise
                    delay = policy.delay_for(attempt)
                    attempt += 1
                    logger.warning(
                        "%s failed (%s), retry %d/%d in %.2fs",
                        func.__qualname__, exc, attempt, policy.max_retries, delay,
                    )
                    global_metrics.increment_counter(
                        "chatr.store.retries", tags={"operation": func.__name__}
                    )
                    if on_retry:
                        on_retry(exc, attempt, delay)
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
