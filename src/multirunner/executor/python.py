"""
Python backend evaluating snippets in a fresh namespace of this interpreter.

Each call builds new globals with a reduced set of builtins, a ``print``
that writes to the call's capture buffer and an ``__import__`` that
refuses configured module roots.  The value of a trailing expression is
reported when nothing was printed, the way an interactive prompt would.

The step budget is a line tracer installed in the worker thread: once the
deadline passes (or the caller gave up) the next traced line raises
:class:`ExecutionTimeout`.  The interpreter drops a tracer that raised,
so a :class:`DeadlineEnforcer` keeps re-raising the deadline into the
thread until the snippet is gone.  Two cases still outlive the caller:
code that spends its time inside a single C call, which only stops when
that call returns, and code that swallows ``BaseException`` in a loop
forever.  Both hold nothing but their own worker thread.
"""

from __future__ import annotations

import ast
import builtins
import ctypes
import sys
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from ..config import DEFAULT_BLOCKED_BUILTINS, DEFAULT_BLOCKED_IMPORTS
from ..errors import ExecutionTimeout, RuntimeFault
from ..timeouts import TIMEOUT_MESSAGE
from .base import BackendCapabilities
from .sandbox import Budget, CaptureBuffer, InProcessBackend, captured_output, select_output

FILENAME = "<snippet>"

# Seconds between two deadline signals once the budget is spent.
ENFORCE_INTERVAL = 0.05


def _safe_import_factory(blocked_imports: Iterable[str]) -> Callable[..., Any]:
    blocked = set(blocked_imports)

    def _safe_import(name, globals=None, locals=None, fromlist=(), level=0):
        root = name.split(".")[0]
        if root in blocked:
            raise ImportError(f"Import '{name}' is blocked by policy")
        return __import__(name, globals, locals, fromlist, level)

    return _safe_import


def _print_factory(buffer: CaptureBuffer) -> Callable[..., None]:
    def _print(*args: Any, sep: Optional[str] = " ", end: Optional[str] = "\n", file: Any = None, flush: bool = False) -> None:
        sep = " " if sep is None else sep
        end = "\n" if end is None else end
        text = sep.join(str(arg) for arg in args) + end
        if file is None:
            buffer.write(text)
            return
        file.write(text)
        if flush:
            file.flush()

    return _print


class _DeadlineReached(BaseException):
    """Deadline signal raised into the evaluating thread."""


def _tracer(budget: Budget) -> Callable[..., Any]:
    def trace(frame, event, arg):
        if event == "line" and budget.exhausted():
            raise _DeadlineReached()
        return trace

    return trace


def _set_async_exc(thread_id: int, exc: Optional[type]) -> None:
    # Passing NULL clears an exception still pending for the thread.
    ctypes.pythonapi.PyThreadState_SetAsyncExc(
        ctypes.c_ulong(thread_id),
        ctypes.py_object(exc) if exc is not None else None,
    )


class DeadlineEnforcer(threading.Thread):
    """Raise :class:`_DeadlineReached` into a thread until it is stopped.

    Signals start once the budget is exhausted and repeat every
    ``interval`` seconds, so catching one of them does not buy the
    snippet more time.  :meth:`stop` also withdraws a signal that was
    sent but not delivered yet.
    """

    def __init__(self, budget: Budget, target_id: int, interval: float = ENFORCE_INTERVAL) -> None:
        super().__init__(name="multirunner-python-deadline", daemon=True)
        self.budget = budget
        self.target_id = target_id
        self.interval = interval
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            with self._lock:
                if self._stopped.is_set():
                    return
                if self.budget.exhausted():
                    _set_async_exc(self.target_id, _DeadlineReached)

    def stop(self) -> None:
        with self._lock:
            self._stopped.set()
            _set_async_exc(self.target_id, None)


def split_last_expression(code: str) -> Tuple[Any, Optional[Any]]:
    """Compile ``code`` into a body and, when it ends with one, a trailing expression."""
    tree = ast.parse(code, filename=FILENAME, mode="exec")
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last = tree.body.pop()
        expression = ast.Expression(body=last.value)
        return (
            compile(tree, FILENAME, "exec"),
            compile(expression, FILENAME, "eval"),
        )
    return compile(tree, FILENAME, "exec"), None


class PythonBackend(InProcessBackend):
    """Evaluate Python source and report printed text or the trailing expression."""

    name = "python"
    capabilities = BackendCapabilities(
        has_compile_step=False,
        supports_hard_preemption=False,
        supports_step_budget=True,
    )

    def __init__(
        self,
        blocked_imports: Iterable[str] = DEFAULT_BLOCKED_IMPORTS,
        blocked_builtins: Iterable[str] = DEFAULT_BLOCKED_BUILTINS,
    ) -> None:
        self.blocked_imports = list(blocked_imports)
        self.blocked_builtins = set(blocked_builtins)

    def build_globals(self, buffer: CaptureBuffer) -> Dict[str, Any]:
        safe = {
            name: value
            for name, value in vars(builtins).items()
            if name not in self.blocked_builtins
        }
        safe["__import__"] = _safe_import_factory(self.blocked_imports)
        safe["print"] = _print_factory(buffer)
        return {"__builtins__": safe, "__name__": "__main__"}

    def evaluate(self, code: str, budget: Budget) -> str:
        try:
            body, expression = split_last_expression(code)
        except SyntaxError as exc:
            raise RuntimeFault(f"SyntaxError: {exc.msg} (line {exc.lineno})") from None

        with captured_output() as buffer:
            namespace = self.build_globals(buffer)
            value = None
            enforcer = DeadlineEnforcer(budget, threading.get_ident())
            try:
                try:
                    sys.settrace(_tracer(budget))
                    enforcer.start()
                    exec(body, namespace)
                    if expression is not None:
                        value = eval(expression, namespace)
                finally:
                    sys.settrace(None)
                    enforcer.stop()
            except _DeadlineReached:
                enforcer.stop()
                raise ExecutionTimeout(TIMEOUT_MESSAGE) from None
            except SystemExit as exc:
                if exc.code not in (None, 0):
                    raise RuntimeFault(f"SystemExit: {exc.code}") from None
            except Exception as exc:
                raise RuntimeFault(f"{type(exc).__name__}: {exc}") from None
            # A snippet that swallowed every deadline signal but still finished.
            budget.check()
            captured = buffer.getvalue()

        if value is None:
            return select_output(captured)
        return select_output(captured, value, True)
