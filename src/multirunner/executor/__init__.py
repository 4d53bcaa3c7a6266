"""
Execution backends for the multi-language runner.

Three families live here: :class:`CompiledBackend` drives external
toolchains in a per-call workspace, the in-process interpreters
(JavaScript, Python, Lua) evaluate snippets inside this process, and
:class:`WasmBackend` hosts WebAssembly modules.  All of them implement
the :class:`Backend` interface from ``base.py`` and are selected by the
dispatcher from the requested language tag.
"""

from .base import Backend, BackendCapabilities, ExecutionOutcome
from .compiled import CompiledBackend, Toolchain, ToolchainSpec
from .javascript import JavaScriptBackend
from .lua import LuaBackend
from .python import PythonBackend
from .toolchains import TOOLCHAIN_SPECS
from .wasm import WasmBackend

__all__ = [
    "Backend",
    "BackendCapabilities",
    "ExecutionOutcome",
    "CompiledBackend",
    "Toolchain",
    "ToolchainSpec",
    "TOOLCHAIN_SPECS",
    "JavaScriptBackend",
    "LuaBackend",
    "PythonBackend",
    "WasmBackend",
]
