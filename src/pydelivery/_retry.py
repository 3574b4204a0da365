"""Bounded retry with backoff for remote requests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from pydelivery.exceptions import DeliveryError

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(base_delay: float, attempt: int) -> float:
    """Delay before the retry following failed *attempt* (1-based)."""
    return base_delay * attempt


@dataclass(frozen=True)
class RetryPolicy:
    """Retry retryable :class:`DeliveryError` failures up to ``max_attempts`` times.

    The first try counts as an attempt. Errors that are not retryable, and
    anything that is not a :class:`DeliveryError`, propagate immediately.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Callable[[float, int], float] = linear_backoff

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        description: str = "request",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        attempts = max(1, self.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await fn()
            except DeliveryError as exc:
                if not exc.retryable or attempt >= attempts:
                    raise
                delay = self.backoff(self.base_delay, attempt)
                _logger.debug(
                    "%s attempt %d/%d failed (%s), retrying in %.2fs",
                    description,
                    attempt,
                    attempts,
                    exc.kind,
                    delay,
                )
                await sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
