"""Tests for the WebAssembly host, using modules assembled from WAT text."""

from __future__ import annotations

import asyncio
import base64
import time

import pytest
import wasmtime

from multirunner.errors import MalformedInput
from multirunner.executor.wasm import NO_ENTRY_MESSAGE, START_MESSAGE, WasmBackend, decode_module
from multirunner.timeouts import TIMEOUT_MESSAGE


def encode(wat: str) -> str:
    return base64.b64encode(wasmtime.wat2wasm(wat)).decode()


def run(payload: str, timeout_ms: int = 5000):
    return asyncio.run(WasmBackend().run(payload, timeout_ms))


def test_main_return_value():
    outcome = run(encode('(module (func (export "main") (result i32) i32.const 42))'))
    assert outcome.output == "main executed, return=42"


def test_start_has_no_output_capture():
    assert run(encode('(module (func (export "_start")))')).output == START_MESSAGE


def test_start_preferred_over_main():
    wat = '(module (func (export "_start")) (func (export "main") (result i32) i32.const 1))'
    assert run(encode(wat)).output == START_MESSAGE


def test_missing_entry_point():
    assert run(encode('(module (func (export "other")))')).error == NO_ENTRY_MESSAGE


def test_unknown_imports_are_stubbed():
    wat = """
    (module
      (import "env" "get" (func $get (result i32)))
      (import "gojs" "runtime.ticks" (func $ticks (param i32) (result f64)))
      (import "env" "memory" (memory 1))
      (func (export "main") (result i32) call $get))
    """
    assert run(encode(wat)).output == "main executed, return=0"


def test_abort_import_fails_the_call():
    wat = """
    (module
      (import "env" "abort" (func $abort (param i32 i32 i32 i32)))
      (func (export "main")
        i32.const 0 i32.const 0 i32.const 0 i32.const 0
        call $abort))
    """
    outcome = run(encode(wat))
    assert outcome.output is None
    assert "wasm abort" in outcome.error


def test_wasi_exit_zero_counts_as_success():
    wat = """
    (module
      (import "wasi_snapshot_preview1" "proc_exit" (func $exit (param i32)))
      (memory (export "memory") 1)
      (func (export "_start") i32.const 0 call $exit))
    """
    assert run(encode(wat)).output == START_MESSAGE


def test_trap_is_a_runtime_error():
    outcome = run(encode('(module (func (export "main") unreachable))'))
    assert outcome.output is None
    assert outcome.error


def test_infinite_loop_is_interrupted():
    wat = '(module (func (export "main") (loop $spin (br $spin))))'
    start = time.monotonic()
    outcome = run(encode(wat), timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE
    assert time.monotonic() - start < 1


def test_invalid_base64():
    outcome = run("this is not base64!")
    assert outcome.error.startswith("Invalid base64 encoding")


def test_truncated_binary():
    with pytest.raises(MalformedInput, match="truncated"):
        decode_module(base64.b64encode(b"\x00as").decode())


def test_bad_magic():
    outcome = run(base64.b64encode(b"\x7fELF\x02\x01").decode())
    assert outcome.error.startswith("Invalid WebAssembly binary.")


def test_corrupt_module_body():
    outcome = run(base64.b64encode(b"\x00asm\x01\x00\x00\x00\xff").decode())
    assert outcome.error.startswith("Invalid WebAssembly binary format.")


def test_decode_ignores_whitespace():
    payload = base64.b64encode(b"\x00asm\x01\x00\x00\x00").decode()
    assert decode_module(payload[:4] + "\n  " + payload[4:]) == b"\x00asm\x01\x00\x00\x00"


def test_source_code_is_refused():
    outcome = run('package main\n\nimport "fmt"\n\nfunc main() { fmt.Println("hi") }')
    assert outcome.error.startswith("Go source code is not supported directly.")
    assert "tinygo build" in outcome.error
