"""Exponential backoff with jitter for provider API calls.

Retries on transient HTTP errors (429, 500, 502, 503, 504) and transport
errors (connect failures, timeouts).  Respects Retry-After headers.  An
optional total budget bounds the whole call, sleeps included: a retry whose
wait would cross the deadline is not attempted and the last error is raised.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

# HTTP status codes that trigger a retry
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long one logical request may retry.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Initial delay in seconds.
        max_delay: Maximum delay cap in seconds.
        jitter: Jitter factor (0.0-1.0).
        budget_seconds: Wall-clock cap for all attempts and waits, or None.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.3
    budget_seconds: float | None = None

    def delay_for(self, attempt: int, response: httpx.Response | None = None) -> float:
        """Delay before retry ``attempt + 1``, respecting Retry-After."""
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    return min(float(retry_after), self.max_delay)
                except ValueError:
                    pass

        # Exponential backoff: base * 2^attempt
        delay = min(self.base_delay * (2**attempt), self.max_delay)

        jitter_amount = delay * self.jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

        return max(0.1, delay)


def _next_delay(
    policy: RetryPolicy,
    attempt: int,
    deadline: float | None,
    label: str,
    response: httpx.Response | None = None,
) -> float | None:
    """Delay before the next attempt, or None to give up."""
    if attempt >= policy.max_retries:
        return None
    delay = policy.delay_for(attempt, response)
    if deadline is not None and time.monotonic() + delay >= deadline:
        logger.warning("Retry budget of %.1fs exhausted for %s", policy.budget_seconds, label)
        return None
    return delay


def send_with_retry(
    send: Callable[[float | None], httpx.Response],
    policy: RetryPolicy,
    label: str = "request",
) -> httpx.Response:
    """Call ``send(remaining_seconds)`` until it succeeds or retries run out.

    ``send`` receives the time left in the budget (None when unbounded) so
    each attempt can shorten its own timeout.
    """
    deadline = None if policy.budget_seconds is None else time.monotonic() + policy.budget_seconds
    attempt = 0
    while True:
        remaining = None if deadline is None else deadline - time.monotonic()
        try:
            return send(remaining)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status not in RETRYABLE_STATUS_CODES:
                raise
            delay = _next_delay(policy, attempt, deadline, label, e.response)
            if delay is None:
                raise
            reason = f"HTTP {status}"
        except httpx.TransportError as e:
            delay = _next_delay(policy, attempt, deadline, label)
            if delay is None:
                raise
            reason = f"transport error: {type(e).__name__}"

        attempt += 1
        logger.warning(
            "Retry %d/%d for %s (%s), waiting %.1fs",
            attempt,
            policy.max_retries,
            label,
            reason,
            delay,
        )
        time.sleep(delay)
