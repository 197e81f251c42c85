"""Racing collaborator calls against caller cancellation and a deadline."""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class HealingCancelled(Exception):
    """The caller cancelled the request or its deadline passed."""

    def __init__(self, reason: str):
        """Initialize with a short reason ("cancelled" or "deadline exceeded")."""
        super().__init__(reason)
        self.reason = reason


def deadline_from_timeout(timeout_seconds: Optional[float]) -> Optional[float]:
    """Monotonic deadline for a relative timeout (None means no deadline)."""
    if timeout_seconds is None:
        return None
    return time.monotonic() + max(0.0, float(timeout_seconds))


def check_cancelled(
    cancel_event: Optional[asyncio.Event] = None, deadline_ts: Optional[float] = None
) -> None:
    """Raise HealingCancelled if the request should stop now."""
    if cancel_event is not None and cancel_event.is_set():
        raise HealingCancelled("cancelled")
    if deadline_ts is not None and time.monotonic() >= deadline_ts:
        raise HealingCancelled("deadline exceeded")


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event] = None,
    deadline_ts: Optional[float] = None,
) -> T:
    """Await ``awaitable`` unless the caller cancels or the deadline passes first.

    The in-flight call is cancelled when either happens. Cancellation of the
    calling task itself propagates unchanged.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        check_cancelled(cancel_event, deadline_ts)
    except HealingCancelled:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise

    waiters = {task}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    timeout = None
    if deadline_ts is not None:
        timeout = max(0.0, deadline_ts - time.monotonic())

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if cancel_waiter is not None and cancel_waiter in done:
        raise HealingCancelled("cancelled")
    raise HealingCancelled("deadline exceeded")
