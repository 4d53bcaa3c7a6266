"""
JavaScript backend running snippets inside an embedded V8 isolate.

Every call creates its own :class:`py_mini_racer.MiniRacer` context, so
globals never survive between invocations.  V8 enforces the timeout and
the heap cap itself, which makes this the one in-process backend with
hard preemption.
"""

from __future__ import annotations

import json
import logging
import re

from py_mini_racer import JSEvalException, JSOOMException, JSTimeoutException, MiniRacer

from ..errors import ExecutionTimeout, RuntimeFault
from ..timeouts import TIMEOUT_MESSAGE
from .base import BackendCapabilities
from .sandbox import Budget, InProcessBackend, select_output

logger = logging.getLogger("multirunner.javascript")

_ERROR_LINE = re.compile(r"\b([A-Z]\w*Error: [^\n]*)")

# The snippet is evaluated with an indirect eval so it runs in global scope
# and its completion value becomes the result.  ``console`` writes into a
# local array that is returned together with the rendered value.
HARNESS = """
(function () {
  const lines = [];
  const render = function (value) {
    if (typeof value === "string") return value;
    try {
      const json = JSON.stringify(value);
      return json === undefined ? String(value) : json;
    } catch (err) {
      return String(value);
    }
  };
  const write = function () {
    lines.push(Array.prototype.map.call(arguments, render).join(" "));
  };
  globalThis.console = { log: write, info: write, warn: write, error: write, debug: write };
  const value = (0, eval)(%s);
  return JSON.stringify({
    lines: lines,
    hasValue: value !== undefined,
    value: value === undefined ? null : render(value)
  });
})()
"""


class JavaScriptBackend(InProcessBackend):
    """Evaluate JavaScript and report console output or the last expression value."""

    name = "javascript"
    capabilities = BackendCapabilities(
        has_compile_step=False,
        supports_hard_preemption=True,
        supports_step_budget=True,
    )

    def __init__(self, max_memory_mb: int = 256) -> None:
        self.max_memory_bytes = max_memory_mb * 1024 * 1024

    def evaluate(self, code: str, budget: Budget) -> str:
        budget.check()
        ctx = MiniRacer()
        try:
            ctx.set_hard_memory_limit(self.max_memory_bytes)
            raw = ctx.eval(HARNESS % json.dumps(code), timeout_sec=budget.remaining)
        except JSTimeoutException:
            raise ExecutionTimeout(TIMEOUT_MESSAGE) from None
        except JSOOMException:
            logger.warning("JavaScript snippet hit the %d MiB heap cap", self.max_memory_bytes >> 20)
            raise RuntimeFault("JavaScript heap limit exceeded") from None
        except JSEvalException as exc:
            raise RuntimeFault(_js_error(exc)) from None
        finally:
            ctx.close()

        envelope = json.loads(raw)
        captured = "".join(line + "\n" for line in envelope["lines"])
        return select_output(captured, envelope["value"], envelope["hasValue"])


def _js_error(exc: JSEvalException) -> str:
    """Return the ``Name: message`` part of a V8 error report.

    V8 reports wrap it in a source location and a stack trace.
    """
    text = str(exc).strip()
    match = _ERROR_LINE.search(text)
    if match:
        return match.group(1).strip()
    return text or "Unknown JavaScript error"
