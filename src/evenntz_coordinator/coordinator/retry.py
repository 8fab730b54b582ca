"""Bounded exponential backoff for retryable collaborator calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from evenntz_coordinator.errors import CoordinatorError

log = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: tuple[type[CoordinatorError], ...],
    label: str,
) -> T:
    """Await ``fn()`` up to ``attempts`` times, retrying only ``retry_on`` errors.

    The last error is re-raised once attempts are exhausted. Anything not in
    ``retry_on`` propagates on the first occurrence.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= attempts:
                log.warning("%s failed after %d attempts: %s", label, attempts, exc)
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            log.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt, attempts, delay, exc,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
