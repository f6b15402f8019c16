"""
Unit tests for retry and cancellation helpers.
"""

import asyncio

import pytest

from storywriter.utils.resilience import (
    OperationCancelled,
    RetryPolicy,
    backoff_delay,
    run_cancellable,
    wait_or_cancel,
)


@pytest.mark.parametrize(
    "attempt, expected",
    [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0)],
)
def test_backoff_delay_doubles(attempt, expected):
    """Test exponential backoff from a one second base."""
    assert backoff_delay(attempt) == expected


def test_backoff_delay_is_capped():
    """Test max_delay bounds the delay."""
    assert backoff_delay(10, base_delay=1.0, max_delay=30.0) == 30.0


def test_retry_policy_defaults():
    """Test default policy values."""
    policy = RetryPolicy()

    assert policy.max_retries == 3
    assert policy.max_wait_hint_retries == 3
    assert policy.max_wait_hint_total == 120.0
    assert [policy.delay_for(n) for n in range(3)] == [1.0, 2.0, 4.0]


def test_retry_policy_wait_hint_bounds():
    """Test wait hints are bounded by count and cumulative time."""
    policy = RetryPolicy(max_retries=3, max_wait_hint_total=10.0)

    assert policy.allows_wait_hint(2.0, hint_retries=0, waited=0.0) is True
    assert policy.allows_wait_hint(2.0, hint_retries=3, waited=0.0) is False
    assert policy.allows_wait_hint(5.0, hint_retries=1, waited=5.0) is True
    assert policy.allows_wait_hint(5.0, hint_retries=1, waited=6.0) is False


def test_retry_policy_explicit_wait_hint_retries():
    """Test an explicit wait-hint retry count overrides the default."""
    assert RetryPolicy(max_retries=3, max_wait_hint_retries=0).allows_wait_hint(1.0, 0, 0.0) is False


@pytest.mark.asyncio
async def test_run_cancellable_without_event():
    """Test awaiting without a cancel event."""
    async def operation():
        return "value"

    assert await run_cancellable(operation(), None) == "value"


@pytest.mark.asyncio
async def test_run_cancellable_completes_before_cancel():
    """Test the result is returned when the awaitable finishes first."""
    async def operation():
        return "value"

    assert await run_cancellable(operation(), asyncio.Event()) == "value"


@pytest.mark.asyncio
async def test_run_cancellable_propagates_errors():
    """Test errors from the awaitable propagate unchanged."""
    async def operation():
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        await run_cancellable(operation(), asyncio.Event())


@pytest.mark.asyncio
async def test_run_cancellable_already_set():
    """Test an already-set event cancels before the awaitable runs."""
    started = []

    async def operation():
        started.append(True)

    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(OperationCancelled):
        await run_cancellable(operation(), cancel_event)

    await asyncio.sleep(0)
    assert started == []


@pytest.mark.asyncio
async def test_run_cancellable_cancels_in_flight_operation():
    """Test setting the event mid-flight cancels the pending awaitable."""
    cancel_event = asyncio.Event()
    cancelled = asyncio.Event()

    async def operation():
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    async def cancel_soon():
        await asyncio.sleep(0.01)
        cancel_event.set()

    asyncio.ensure_future(cancel_soon())

    with pytest.raises(OperationCancelled):
        await run_cancellable(operation(), cancel_event)

    await asyncio.wait_for(cancelled.wait(), timeout=1.0)


@pytest.mark.asyncio
async def test_wait_or_cancel_uses_injected_sleep(recording_sleep):
    """Test waiting delegates to the injected sleep."""
    await wait_or_cancel(2.0, asyncio.Event(), sleep=recording_sleep)

    assert recording_sleep.calls == [2.0]


@pytest.mark.asyncio
async def test_wait_or_cancel_aborts_on_event():
    """Test a long wait is abandoned when the event fires."""
    cancel_event = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, cancel_event.set)

    with pytest.raises(OperationCancelled):
        await wait_or_cancel(60.0, cancel_event)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
