"""
sportml-chat: Retry decisions with capped exponential backoff.

The policy is a pure function of the number of completed attempts; the
caller owns the loop and the sleep. Delays double from ``base_delay``
(1s, 2s, 4s, ...) and never exceed ``max_delay``.

Example::

    policy = RetryPolicy(max_attempts=3)
    attempt = 0
    while True:
        attempt += 1
        result = await call()
        if result.success:
            break
        decision = policy.decide(attempt)
        if not decision.retry:
            break
        await asyncio.sleep(decision.delay)
"""

from __future__ import annotations

from dataclasses import dataclass, field

RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})


@dataclass(frozen=True)
class RetryDecision:
    """What to do after a failed attempt.

    Attributes:
        retry: Whether another attempt should be made.
        delay: Seconds to wait before that attempt (0.0 when giving up).
    """

    retry: bool
    delay: float = 0.0


GIVE_UP = RetryDecision(retry=False)


@dataclass(frozen=True)
class RetryPolicy:
    """Capped exponential backoff.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay: Delay in seconds after the first failed attempt.
        max_delay: Upper bound on any single delay.
        retryable_statuses: Upstream HTTP statuses worth retrying.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 4.0
    retryable_statuses: frozenset[int] = field(default=RETRYABLE_STATUSES)

    def decide(self, attempt: int) -> RetryDecision:
        """Decide after ``attempt`` completed, failed attempts."""
        if attempt >= self.max_attempts:
            return GIVE_UP
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        return RetryDecision(retry=True, delay=delay)

    def is_retryable_status(self, status: int) -> bool:
        """Transient upstream signal (rate limited, bad gateway, unavailable, timeout)."""
        return status in self.retryable_statuses


NO_RETRY = RetryPolicy(max_attempts=1)
