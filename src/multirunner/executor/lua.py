"""
Lua backend built on an embedded Lua runtime (``lupa``).

A new :class:`lupa.LuaRuntime` is created for every call with a memory
cap, a ``print`` that writes to the call's buffer and a count hook that
aborts the script once the budget is spent.  Modules giving access to the
host (``io``, ``os.execute``, ``require``...) are removed before user code
runs.

Snippets that are a bare expression, or end with one, are retried with
that line wrapped in ``print(...)`` so ``1 + 2`` answers ``3``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import lupa
from lupa import LuaRuntime

from ..errors import ExecutionTimeout, RuntimeFault
from ..output import safe_stringify
from ..timeouts import TIMEOUT_MESSAGE
from .base import BackendCapabilities
from .sandbox import Budget, InProcessBackend, captured_output, select_output

logger = logging.getLogger("multirunner.lua")

HOOK_INSTRUCTIONS = 1000

_STATEMENT = re.compile(r"^(local|function|if|for|while|repeat|do|return|break|goto|end)\b")

_PRINT = """
function(write)
  return function(...)
    local parts = {}
    for i = 1, select("#", ...) do
      parts[i] = tostring((select(i, ...)))
    end
    write(table.concat(parts, "\\t") .. "\\n")
  end
end
"""

_INSTALL_HOOK = """
function(exhausted, message)
  local sethook = debug.sethook
  local function hook()
    if exhausted() then
      -- from here on every instruction raises, also outside pcall
      sethook(hook, "", 1)
      error(message, 0)
    end
  end
  sethook(hook, "", %d)
end
""" % HOOK_INSTRUCTIONS

_LOCKDOWN = """
debug = nil
io = nil
os.exit = nil
os.execute = nil
os.remove = nil
os.rename = nil
loadfile = nil
dofile = nil
require = nil
package = nil
"""

_PACK = "function(f) return table.pack(f()) end"


def _is_statement(line: str) -> bool:
    return bool(_STATEMENT.match(line))


def expression_candidates(code: str) -> List[str]:
    """Alternative sources to try when ``code`` does not compile as is."""
    candidates = []
    lines = code.split("\n")
    numbered = [(index, line) for index, line in enumerate(lines) if line.strip()]
    if numbered:
        index, raw = numbered[-1]
        last = raw.strip()
        if not _is_statement(last):
            indent = raw[: len(raw) - len(raw.lstrip())]
            rewritten = list(lines)
            rewritten[index] = f"{indent}print({last})"
            candidates.append("\n".join(rewritten))
    trimmed = code.strip()
    if trimmed and "\n" not in trimmed and not _is_statement(trimmed):
        whole = f"print({trimmed})"
        if whole not in candidates:
            candidates.append(whole)
    return candidates


class LuaBackend(InProcessBackend):
    """Evaluate Lua and report printed lines or the chunk's return values."""

    name = "lua"
    capabilities = BackendCapabilities(
        has_compile_step=False,
        supports_hard_preemption=False,
        supports_step_budget=True,
    )

    def __init__(self, max_memory_mb: int = 256) -> None:
        self.max_memory_bytes = max_memory_mb * 1024 * 1024

    def new_runtime(self, budget: Budget, write) -> LuaRuntime:
        lua = LuaRuntime(
            unpack_returned_tuples=True,
            register_eval=False,
            register_builtins=False,
            max_memory=self.max_memory_bytes,
        )
        lua.globals().print = lua.eval(_PRINT)(write)
        lua.eval(_INSTALL_HOOK)(budget.exhausted, TIMEOUT_MESSAGE)
        lua.execute(_LOCKDOWN)
        return lua

    def load(self, lua: LuaRuntime, code: str) -> Any:
        error: Optional[lupa.LuaSyntaxError] = None
        for attempt, source in enumerate([code, *expression_candidates(code)]):
            try:
                chunk = lua.compile(source)
            except lupa.LuaSyntaxError as exc:
                error = error or exc
                continue
            if attempt:
                logger.debug("Lua snippet compiled after wrapping its last expression in print")
            return chunk
        raise RuntimeFault(str(error) or "Unknown Lua error")

    def evaluate(self, code: str, budget: Budget) -> str:
        with captured_output() as buffer:
            lua = self.new_runtime(budget, buffer.write)
            chunk = self.load(lua, code)
            try:
                packed = lua.eval(_PACK)(chunk)
            except lupa.LuaMemoryError:
                raise RuntimeFault("Lua memory limit exceeded") from None
            except lupa.LuaError as exc:
                if str(exc) == TIMEOUT_MESSAGE or budget.exhausted():
                    raise ExecutionTimeout(TIMEOUT_MESSAGE) from None
                raise RuntimeFault(str(exc) or "Unknown Lua error") from None
            captured = buffer.getvalue()
            values = [_lua_value(lua, packed[i]) for i in range(1, packed["n"] + 1)]

        if captured.strip() or not values:
            return select_output(captured)
        return "\t".join(safe_stringify(value) for value in values)


def _lua_value(lua: LuaRuntime, value: Any) -> Any:
    if lupa.lua_type(value) is not None:
        return lua.globals().tostring(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
