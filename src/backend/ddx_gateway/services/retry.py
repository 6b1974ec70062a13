"""
Retry with exponential backoff for transient upstream failures.

Any network-calling provider wraps its request in ``with_backoff``. Only
failures carrying a transient HTTP status are retried; everything else
(4xx, transport errors, unparseable payloads) propagates on first
occurrence.
"""
from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, FrozenSet, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

# Defaults: 2 extra attempts after the first, 1s doubling, up to 200ms jitter
DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_JITTER = 0.2


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_jitter: float = DEFAULT_MAX_JITTER
    transient_statuses: FrozenSet[int] = TRANSIENT_STATUS_CODES

    def is_transient(self, status: Optional[int]) -> bool:
        return status is not None and status in self.transient_statuses

    def backoff_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """``base * 2**attempt`` plus uniform jitter in ``[0, max_jitter]``."""
        jitter = (rng or random).uniform(0.0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return self.base_delay * (2 ** attempt) + jitter

    def delay_for(
        self,
        attempt: int,
        retry_after: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> float:
        """A server wait hint wins outright; otherwise exponential backoff."""
        if retry_after is not None and retry_after > 0:
            return retry_after
        return self.backoff_delay(attempt, rng)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("120") and HTTP-dates. Returns None for missing
    or unparseable values, and for dates already in the past.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds


async def with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    label: str = "upstream",
) -> T:
    """
    Run ``operation`` until it succeeds, fails permanently, or retries run out.

    The failure's ``status`` attribute decides whether it is transient; its
    ``retry_after`` attribute (seconds), when set, replaces the computed
    backoff exactly.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Retry limits and transient status set.
        sleep: Awaitable used to wait between attempts (injectable for tests).
        rng: Random source for jitter.
        label: Name used in log messages.

    Returns:
        Whatever the first successful attempt returns.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            status = getattr(e, "status", None)
            if not policy.is_transient(status) or attempt >= policy.max_retries:
                raise
            delay = policy.delay_for(attempt, getattr(e, "retry_after", None), rng)
            logger.warning(
                f"{label} transient error {status} "
                f"(attempt {attempt + 1}/{policy.max_retries + 1}). Retrying in {delay:.2f}s..."
            )
            await sleep(delay)
            attempt += 1
