"""Bounded, cancellable presence polling.

Fields on checkout pages are frequently rendered after initial load
(lazy drawers, hydrated React widgets).  ``poll_until`` retries a probe a
fixed number of times with a fixed interval and returns a definite
result.  Waiting uses ``asyncio.sleep`` so cancelling the owning task
stops the poll immediately.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollResult:
    """Outcome of a bounded poll."""

    succeeded: bool
    attempts: int

    def __bool__(self) -> bool:
        return self.succeeded


async def poll_until(
    probe: Callable[[], Awaitable[bool]],
    *,
    attempts: int,
    interval_s: float,
    label: str = "probe",
) -> PollResult:
    """Call *probe* until it returns True or *attempts* are exhausted.

    Sleeps *interval_s* between attempts (never after the last one).

    Args:
        probe: Async callable returning True on success.
        attempts: Maximum number of probe calls (at least 1).
        interval_s: Delay between attempts, in seconds.
        label: Name used in debug logging.

    Returns:
        A ``PollResult`` with the success flag and the attempts used.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        if await probe():
            if attempt > 1:
                logger.debug("%s succeeded on attempt %d/%d", label, attempt, attempts)
            return PollResult(succeeded=True, attempts=attempt)
        if attempt < attempts:
            logger.debug("%s not ready, retrying in %.2fs (%d/%d)", label, interval_s, attempt, attempts)
            await asyncio.sleep(interval_s)
    return PollResult(succeeded=False, attempts=attempts)
