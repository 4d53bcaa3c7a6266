"""
WebAssembly host backend.

Payloads are base64-encoded ``.wasm`` modules.  The host validates the
encoding and the ``\\0asm`` header, links a minimal import environment and
calls ``_start`` or, failing that, ``main``.

Import policy
-------------
* ``wasi_snapshot_preview1`` is linked to a real WASI implementation whose
  standard streams are not inherited, so programs run but their output is
  not captured.
* Every other imported function is a stub returning zeroes; memories,
  tables and globals are created with the declared type.  This is enough
  for modules built against a managed runtime (``gojs``, ``env``) to link,
  not to give those imports real semantics.

Guest code is interrupted through the shared engine's epoch counter, which
a background ticker advances every :data:`EPOCH_TICK_MS` milliseconds.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import threading
import time
from typing import Any, List

import wasmtime

from ..errors import (
    ExecutionTimeout,
    MalformedInput,
    RuntimeFault,
    UnsupportedFeature,
)
from ..sniffing import compile_first_message, detect_source_language
from ..timeouts import TIMEOUT_MESSAGE
from .base import BackendCapabilities, SharedEngine
from .sandbox import Budget, InProcessBackend

logger = logging.getLogger("multirunner.wasm")

WASM_MAGIC = b"\x00asm"
EPOCH_TICK_MS = 10
WASI_MODULES = frozenset({"wasi_snapshot_preview1"})

START_MESSAGE = "_start executed (no stdout capture)"
NO_ENTRY_MESSAGE = "WASM has no _start or main export"


def _build_engine() -> wasmtime.Engine:
    config = wasmtime.Config()
    config.epoch_interruption = True
    engine = wasmtime.Engine(config)
    ticker = threading.Thread(target=_tick, args=(engine,), name="wasm-epoch-ticker", daemon=True)
    ticker.start()
    return engine


def _tick(engine: wasmtime.Engine) -> None:
    while True:
        time.sleep(EPOCH_TICK_MS / 1000)
        engine.increment_epoch()


ENGINE = SharedEngine(_build_engine)


def decode_module(payload: str) -> bytes:
    """Decode a base64 payload and check the WebAssembly header."""
    compact = "".join(payload.split())
    try:
        binary = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedInput(
            f"Invalid base64 encoding ({exc}). The input must be a base64-encoded .wasm file."
        ) from None
    if len(binary) < len(WASM_MAGIC):
        raise MalformedInput(
            f"WebAssembly binary is truncated: got {len(binary)} byte(s), "
            "a module needs at least the 4-byte '\\0asm' header."
        )
    if binary[:4] != WASM_MAGIC:
        raise MalformedInput(
            "Invalid WebAssembly binary. The input must be a base64-encoded .wasm file. "
            "WASM binaries start with the magic bytes '\\0asm'."
        )
    return binary


def _zero(valtype: wasmtime.ValType) -> Any:
    if valtype in (wasmtime.ValType.i32(), wasmtime.ValType.i64()):
        return 0
    if valtype in (wasmtime.ValType.f32(), wasmtime.ValType.f64()):
        return 0.0
    return None


def _stub_function(module: str, name: str, functype: wasmtime.FuncType):
    results = [_zero(ty) for ty in functype.results]

    def stub(*_args: Any) -> Any:
        if module == "env" and name == "abort":
            raise RuntimeFault("wasm abort")
        if not results:
            return None
        if len(results) == 1:
            return results[0]
        return results

    return stub


def _stub_extern(store: wasmtime.Store, module: str, name: str, extern_type: Any) -> Any:
    if isinstance(extern_type, wasmtime.FuncType):
        return wasmtime.Func(store, extern_type, _stub_function(module, name, extern_type))
    if isinstance(extern_type, wasmtime.MemoryType):
        return wasmtime.Memory(store, extern_type)
    if isinstance(extern_type, wasmtime.TableType):
        return wasmtime.Table(store, extern_type, None)
    if isinstance(extern_type, wasmtime.GlobalType):
        return wasmtime.Global(store, extern_type, _zero(extern_type.content))
    raise UnsupportedFeature(f"Unsupported import kind for {module}.{name}")


def _is_interrupt(trap: wasmtime.Trap) -> bool:
    code = getattr(trap, "trap_code", None)
    if code is not None:
        return code == wasmtime.TrapCode.INTERRUPT
    return "interrupt" in str(trap).lower()


def _runtime_error(exc: Exception) -> RuntimeFault:
    message = str(exc)
    if "gojs" in message or "runtime" in message:
        return RuntimeFault(
            f"Go WASM runtime error: {message}. "
            "Regular Go's WASM output requires the full wasm_exec.js runtime, which is not "
            "available here. Please build with TinyGo instead: "
            "https://tinygo.org/getting-started/install/"
        )
    return RuntimeFault(message)


class WasmBackend(InProcessBackend):
    """Run base64-encoded WebAssembly modules."""

    name = "wasm"
    capabilities = BackendCapabilities(
        has_compile_step=False,
        supports_hard_preemption=True,
        supports_step_budget=True,
    )

    def evaluate(self, code: str, budget: Budget) -> str:
        language = detect_source_language(code)
        if language is not None:
            raise MalformedInput(compile_first_message(language))
        return self.call_module(decode_module(code), budget)

    async def run_binary(self, binary: bytes, timeout_ms: int) -> str:
        """Run an already-decoded module, for backends that build WASM artifacts."""
        return await self.in_worker(self.call_module, binary, Budget(timeout_ms))

    def call_module(self, binary: bytes, budget: Budget) -> str:
        engine = ENGINE.get()
        try:
            module = wasmtime.Module(engine, binary)
        except wasmtime.WasmtimeError as exc:
            raise MalformedInput(
                "Invalid WebAssembly binary format. The input must be a base64-encoded .wasm "
                f"file. Please compile your code to WebAssembly first. ({exc})"
            ) from None

        export_names = {export.name for export in module.exports}
        if "_start" in export_names:
            entry = "_start"
        elif "main" in export_names:
            entry = "main"
        else:
            raise UnsupportedFeature(NO_ENTRY_MESSAGE)

        store = wasmtime.Store(engine)
        store.set_epoch_deadline(max(1, math.ceil(budget.remaining * 1000 / EPOCH_TICK_MS)))
        linker = self._link(engine, store, module)

        try:
            instance = linker.instantiate(store, module)
            func = instance.exports(store)[entry]
            if entry == "_start":
                func(store)
                return START_MESSAGE
            params: List[Any] = [_zero(ty) for ty in func.type(store).params]
            ret = func(store, *params)
            return f"main executed, return={ret}"
        except wasmtime.ExitTrap as exc:
            if exc.code == 0:
                return START_MESSAGE if entry == "_start" else "main executed, return=0"
            raise RuntimeFault(f"WASM program exited with code {exc.code}") from None
        except wasmtime.Trap as exc:
            if _is_interrupt(exc):
                raise ExecutionTimeout(TIMEOUT_MESSAGE) from None
            raise _runtime_error(exc) from None
        except wasmtime.WasmtimeError as exc:
            raise _runtime_error(exc) from None

    def _link(
        self, engine: wasmtime.Engine, store: wasmtime.Store, module: wasmtime.Module
    ) -> wasmtime.Linker:
        linker = wasmtime.Linker(engine)
        namespaces = {item.module for item in module.imports}
        if namespaces & WASI_MODULES:
            linker.define_wasi()
            store.set_wasi(wasmtime.WasiConfig())
        for item in module.imports:
            if item.module in WASI_MODULES or item.name is None:
                continue
            linker.define(store, item.module, item.name, _stub_extern(store, item.module, item.name, item.type))
        logger.debug("Linked imports from namespaces: %s", sorted(namespaces))
        return linker
