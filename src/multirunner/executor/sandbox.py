"""
Shared plumbing for in-process interpreter backends.

Each call gets a fresh evaluation context, a fresh :class:`CaptureBuffer`
and a :class:`Budget`.  Evaluation happens in a worker thread so the
event loop stays responsive; when the outer deadline wins the race the
budget is cancelled, which the evaluators check at their own yield
points.  An evaluator that never reaches a yield point (a long call into
native code) keeps running in its own thread after the caller already
received the timeout error.  That is a known hazard of in-process
evaluation, which is why every backend here prefers an engine-enforced
limit; it never holds up calls to this or any other backend.
"""

from __future__ import annotations

import abc
import asyncio
import contextlib
import logging
import threading
import time
from typing import Any, Callable, Iterator, List, Optional

from ..errors import ExecutionTimeout
from ..output import SUCCESS_MESSAGE, safe_stringify
from ..timeouts import TIMEOUT_MESSAGE
from .base import Backend, ExecutionOutcome

logger = logging.getLogger("multirunner.sandbox")


class Budget:
    """Wall-clock deadline plus a cancellation flag for one evaluation."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self.deadline = time.monotonic() + timeout_ms / 1000
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(0.0, self.deadline - time.monotonic())

    def exhausted(self) -> bool:
        return self.cancelled or time.monotonic() >= self.deadline

    def check(self) -> None:
        if self.exhausted():
            raise ExecutionTimeout(TIMEOUT_MESSAGE)


class CaptureBuffer:
    """Call-scoped sink for text printed by sandboxed code.

    Writes are ignored once the buffer is detached, so a shim that outlives
    its call cannot leak output into anything else.
    """

    def __init__(self) -> None:
        self._chunks: List[str] = []
        self._attached = True
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            if self._attached:
                self._chunks.append(text)

    def detach(self) -> None:
        with self._lock:
            self._attached = False

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._chunks)


@contextlib.contextmanager
def captured_output() -> Iterator[CaptureBuffer]:
    """Provide a capture buffer that is detached on every exit path."""
    buffer = CaptureBuffer()
    try:
        yield buffer
    finally:
        buffer.detach()


def select_output(captured: str, value: Any = None, has_value: bool = False) -> str:
    """Pick what a successful evaluation reports.

    Captured text wins, then the serialised value of the last expression,
    then a canned success message.
    """
    if captured.strip():
        return captured.rstrip("\n")
    if has_value:
        rendered = safe_stringify(value)
        if rendered:
            return rendered
    return SUCCESS_MESSAGE


class InProcessBackend(Backend):
    """Backend whose evaluator runs in a worker thread of this process.

    Every call gets its own daemon thread rather than a slot in a shared
    pool: an evaluation that outlives its deadline only holds its own
    thread, so it cannot delay other calls or the shutdown of the process.
    """

    async def execute(self, code: str, timeout_ms: int) -> ExecutionOutcome:
        output = await self.in_worker(self.evaluate, code, Budget(timeout_ms))
        return ExecutionOutcome.success(output)

    async def in_worker(self, func: Callable[[Any, Budget], str], payload: Any, budget: Budget) -> str:
        """Run ``func(payload, budget)`` in a dedicated thread and await its result.

        The budget is cancelled on every exit path, including the caller
        giving up, which is what tells the evaluator to stop.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def work() -> None:
            try:
                result, error = func(payload, budget), None
            except BaseException as exc:
                result, error = None, exc
            try:
                loop.call_soon_threadsafe(_settle, future, result, error)
            except RuntimeError:
                # The loop is closed; nobody is waiting for this result.
                logger.debug("%s evaluation finished after its caller went away", self.name)

        worker = threading.Thread(target=work, name=f"multirunner-{self.name}", daemon=True)
        worker.start()
        try:
            return await future
        except asyncio.CancelledError:
            logger.warning("%s evaluation abandoned by its caller, signalling %s to stop", self.name, worker.name)
            raise
        finally:
            budget.cancel()

    @abc.abstractmethod
    def evaluate(self, code: str, budget: Budget) -> str:
        """Evaluate ``code`` in a fresh context and return the output text.

        Runs in a worker thread.  Faults are raised as
        :class:`~multirunner.errors.ExecutionError` subclasses.
        """
        raise NotImplementedError


def _settle(future: asyncio.Future, result: Any, error: Optional[BaseException]) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)
