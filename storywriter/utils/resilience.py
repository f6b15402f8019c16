"""
Resilience utilities for retrying external generation calls.

This module provides:
- RetryPolicy describing bounded retry with exponential backoff
- backoff_delay() for the delay before a given retry
- Cancellable waiting and cancellable awaiting, driven by an asyncio.Event
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class OperationCancelled(Exception):
    """Raised when a cancel event fires while waiting."""
    pass


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: Optional[float] = None,
) -> float:
    """
    Delay in seconds before retry number ``attempt`` (0-based).

    Args:
        attempt: 0-based index of the retry being scheduled
        base_delay: Delay before the first retry
        exponential_base: Growth factor between retries
        max_delay: Optional upper bound on the delay

    Returns:
        ``base_delay * exponential_base ** attempt``, capped at ``max_delay``
    """
    delay = base_delay * (exponential_base ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


class RetryPolicy:
    """
    Bounded retry policy for the generation client.

    Args:
        max_retries: Retries after the initial attempt for ordinary failures (default: 3)
        base_delay: Delay in seconds before the first backoff retry (default: 1.0)
        exponential_base: Backoff growth factor (default: 2.0)
        max_delay: Upper bound on a single backoff delay (default: 60.0)
        max_wait_hint_retries: Retries allowed on provider wait hints (default: max_retries)
        max_wait_hint_total: Cumulative seconds allowed for wait-hint sleeps (default: 120.0)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        exponential_base: float = 2.0,
        max_delay: float = 60.0,
        max_wait_hint_retries: Optional[int] = None,
        max_wait_hint_total: float = 120.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.exponential_base = exponential_base
        self.max_delay = max_delay
        self.max_wait_hint_retries = (
            max_retries if max_wait_hint_retries is None else max_wait_hint_retries
        )
        self.max_wait_hint_total = max_wait_hint_total

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.exponential_base, self.max_delay)

    def allows_wait_hint(self, hint: float, hint_retries: int, waited: float) -> bool:
        """Whether a provider wait hint may be honoured given what was already spent."""
        return (
            hint_retries < self.max_wait_hint_retries
            and waited + hint <= self.max_wait_hint_total
        )

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay}, "
            f"max_wait_hint_total={self.max_wait_hint_total})"
        )


async def run_cancellable(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]) -> T:
    """
    Await ``awaitable`` unless ``cancel_event`` fires first.

    Raises:
        OperationCancelled: If the event is (or becomes) set before completion;
            the pending awaitable is cancelled.
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        raise OperationCancelled("Cancelled before start")

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()
    raise OperationCancelled("Cancelled while in flight")


async def wait_or_cancel(
    delay: float,
    cancel_event: Optional[asyncio.Event],
    sleep: Sleep = asyncio.sleep,
) -> None:
    """Sleep for ``delay`` seconds, aborting early if ``cancel_event`` fires."""
    await run_cancellable(sleep(delay), cancel_event)
