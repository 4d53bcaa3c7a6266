"""
Base interfaces and dataclasses for execution backends.

All concrete backends inherit from :class:`Backend` and implement the
:meth:`Backend.execute` coroutine.  Callers go through :meth:`Backend.run`,
which races ``execute`` against the language budget and folds every
:class:`~multirunner.errors.ExecutionError` into an
:class:`ExecutionOutcome`, so a backend never leaks an exception for an
expected failure.

Three families of backends exist and each has a different notion of
"stop now":

* process backends spawn compilers and programs; a timeout kills the
  child process for real;
* in-process interpreters run inside a worker thread; they stop only
  when the engine enforces its own budget, the race merely stops waiting;
* the WebAssembly host interrupts guest code through the engine's epoch
  counter.

:class:`BackendCapabilities` advertises which of these applies.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generic, Optional, Sequence, TypeVar

from ..errors import ExecutionError
from ..timeouts import run_with_timeout

logger = logging.getLogger("multirunner.executor")

T = TypeVar("T")


@dataclass
class ExecutionOutcome:
    """Terminal result of one invocation: exactly one of ``output``/``error``."""

    output: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, output: str) -> "ExecutionOutcome":
        return cls(output=output)

    @classmethod
    def failure(cls, error: str) -> "ExecutionOutcome":
        return cls(error=error or "Unknown error")


@dataclass(frozen=True)
class BackendCapabilities:
    """Capability flags advertised by a backend.

    Attributes
    ----------
    has_compile_step: bool
        The backend builds an artifact before running it.
    supports_hard_preemption: bool
        A timeout really stops the work (process kill, engine termination,
        epoch interrupt) instead of only abandoning it.
    supports_step_budget: bool
        The evaluator checks a budget while guest code runs, so runaway
        loops stop on their own shortly after the deadline.
    """

    has_compile_step: bool
    supports_hard_preemption: bool
    supports_step_budget: bool


@dataclass
class ProcessResult:
    """Result of running a child process.

    Attributes
    ----------
    stdout: str
        Standard output captured from the process.
    stderr: str
        Standard error captured from the process.
    exit_code: int
        Exit status of the process.  Zero usually indicates success.
    duration_ms: int
        Wall-clock execution time in milliseconds.
    timed_out: bool
        The process was killed because it exceeded its timeout.
    """

    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    timed_out: bool = False


async def run_process(
    args: Sequence[str],
    cwd: Optional[Path],
    timeout_ms: int,
    env: Optional[Dict[str, str]] = None,
) -> ProcessResult:
    """
    Run a command and capture its output, killing it on timeout.

    Parameters
    ----------
    args: sequence of str
        Command and arguments to execute.  No shell is involved.
    cwd: Path, optional
        Working directory for the process.  Inherited when None.
    timeout_ms: int
        Wall-clock limit.  The process is killed when it is exceeded and
        the result is flagged ``timed_out``.
    env: dict, optional
        Environment for the child.  Defaults to the current environment.

    Returns
    -------
    ProcessResult
        Contains the process outputs and exit status.

    Raises
    ------
    FileNotFoundError
        The executable does not exist.

    If the calling task is cancelled (the outer deadline won the race) the
    child is killed and reaped before the cancellation propagates.
    """
    start_time = time.perf_counter()
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd is not None else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env if env is not None else dict(os.environ),
    )
    timed_out = False
    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(), timeout=max(timeout_ms, 1) / 1000
        )
    except asyncio.TimeoutError:
        timed_out = True
        await _kill(process)
        stdout, stderr = b"", b""
    except asyncio.CancelledError:
        await _kill(process)
        raise
    duration = int((time.perf_counter() - start_time) * 1000)
    exit_code = process.returncode if process.returncode is not None else -1
    if timed_out:
        exit_code = -9
    return ProcessResult(
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
        exit_code,
        duration,
        timed_out,
    )


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


class SharedEngine(Generic[T]):
    """Process-wide engine handle built on first use.

    The factory runs exactly once even under concurrent first calls.  Only
    reusable, non-call-scoped objects belong here.
    """

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._value: Optional[T] = None

    def get(self) -> T:
        if self._value is None:
            with self._lock:
                if self._value is None:
                    self._value = self._factory()
        return self._value


class Backend(abc.ABC):
    """
    Abstract base class defining the interface for execution backends.

    Subclasses set :attr:`name` and :attr:`capabilities` and override
    :meth:`execute`.
    """

    name = "backend"
    capabilities = BackendCapabilities(
        has_compile_step=False,
        supports_hard_preemption=False,
        supports_step_budget=False,
    )

    async def run(self, code: str, timeout_ms: int) -> ExecutionOutcome:
        """Execute ``code`` within ``timeout_ms`` and return a terminal outcome.

        Expected failures become error outcomes.  Anything else propagates
        to the dispatcher.
        """
        start_time = time.perf_counter()
        try:
            outcome = await run_with_timeout(self.execute(code, timeout_ms), timeout_ms)
        except ExecutionError as exc:
            logger.info("%s failed (%s): %s", self.name, exc.kind, _first_line(str(exc)))
            outcome = ExecutionOutcome.failure(str(exc))
        logger.debug(
            "%s finished in %d ms", self.name, int((time.perf_counter() - start_time) * 1000)
        )
        return outcome

    @abc.abstractmethod
    async def execute(self, code: str, timeout_ms: int) -> ExecutionOutcome:
        """Run ``code`` and return its outcome.

        Parameters
        ----------
        code: str
            The user supplied payload (source text or an encoded binary).
        timeout_ms: int
            Overall budget.  Implementations split it between their own
            steps; the outer race in :meth:`run` enforces it regardless.

        Returns
        -------
        ExecutionOutcome
            Output on success.  Failures are raised as
            :class:`~multirunner.errors.ExecutionError` subclasses.
        """
        raise NotImplementedError


def _first_line(text: str) -> str:
    return text.splitlines()[0] if text else text
