"""Deadline race shared by every backend."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import ExecutionTimeout

T = TypeVar("T")

TIMEOUT_MESSAGE = "Execution timed out"


async def run_with_timeout(awaitable: Awaitable[T], timeout_ms: int) -> T:
    """Race ``awaitable`` against a deadline of ``timeout_ms`` milliseconds.

    When the deadline elapses first the awaitable is cancelled and
    :class:`ExecutionTimeout` is raised.  Cancellation reaches coroutines
    (child processes get killed, workspaces get cleaned up) but a thread
    started by the awaitable keeps running until its own budget stops it;
    the race only stops *waiting* for it.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=max(timeout_ms, 1) / 1000)
    except asyncio.TimeoutError:
        raise ExecutionTimeout(TIMEOUT_MESSAGE) from None
