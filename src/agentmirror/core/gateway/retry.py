"""
Retry policy for gateway calls.

Every attempt either returns or raises GatewayError, and whether to try
again is decided from that error alone:

    no status (the platform never answered)   retried
    408, 429 and 5xx                          retried, honouring Retry-After
    any other status                          raised at once
    AuthenticationError                       raised at once

Waits grow as base_delay * 2**attempt, capped at max_delay.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, TypeVar

from agentmirror.core.gateway.errors import AuthenticationError, GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS = frozenset({408, 429})


def is_transient(error: GatewayError) -> bool:
    """True when the same call may succeed if repeated unchanged."""
    if isinstance(error, AuthenticationError):
        return False
    if error.status_code is None:
        return True
    return error.status_code in TRANSIENT_STATUS or error.status_code >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff settings for transient gateway failures.

    Attributes:
        max_retries: Attempts after the first one
        base_delay: Wait before the first retry, in seconds
        max_delay: Upper bound for any wait, Retry-After included
        jitter: Fraction of the wait added or removed at random (0 disables)
    """

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    jitter: float = 0.2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be at least base_delay")
        if not 0.0 <= self.jitter < 1.0:
            raise ValueError("jitter must be in [0.0, 1.0)")

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Wait before retry number `attempt` (0-indexed)."""
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_delay)
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(-delay * self.jitter, delay * self.jitter)
        return delay


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "request",
) -> T:
    """
    Await func(), repeating it while it fails transiently.

    Raises:
        GatewayError: The last failure, once it is permanent or retries run out
    """
    attempt = 0
    while True:
        try:
            return await func()
        except GatewayError as e:
            if not is_transient(e):
                raise
            if attempt >= policy.max_retries:
                logger.warning("%s: giving up after %d attempt(s): %s", label, attempt + 1, e)
                raise
            wait = policy.delay(attempt, e.retry_after)
            logger.info("%s: attempt %d failed (%s), retrying in %.2fs", label, attempt + 1, e, wait)
            await asyncio.sleep(wait)
            attempt += 1
