"""Tests for the embedded Lua backend."""

from __future__ import annotations

import asyncio
import time

from multirunner.executor.lua import LuaBackend, expression_candidates
from multirunner.output import SUCCESS_MESSAGE
from multirunner.timeouts import TIMEOUT_MESSAGE


def run(code: str, timeout_ms: int = 3000):
    return asyncio.run(LuaBackend().run(code, timeout_ms))


def test_print_is_captured():
    assert run('print("hello")\nprint(1, nil, true)').output == "hello\n1\tnil\ttrue"


def test_bare_expression_is_printed():
    assert run("1 + 2").output == "3"


def test_trailing_expression_is_printed():
    assert run("local a = 2\na * 3").output == "6"


def test_return_values_are_tab_joined():
    assert run('return 1, "a", true').output == '1\ta\ttrue'


def test_nil_return_value():
    assert run("return nil").output == "null"


def test_tables_use_tostring():
    assert run("return {}").output.startswith("table: ")


def test_printed_output_wins_over_return_values():
    assert run('print("shown")\nreturn 5').output == "shown"


def test_statement_only_gives_canned_message():
    assert run("local x = 1").output == SUCCESS_MESSAGE


def test_runtime_error():
    outcome = run('error("boom")')
    assert outcome.output is None
    assert "boom" in outcome.error


def test_syntax_error():
    outcome = run("local = =")
    assert outcome.output is None
    assert outcome.error


def test_host_access_is_removed():
    assert run("print(io, require, os.execute)").output == "nil\tnil\tnil"


def test_runtimes_are_not_shared():
    run("leaked = 5")
    assert run("return leaked").output == "null"


def test_infinite_loop_times_out():
    start = time.monotonic()
    outcome = run("while true do end", timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE
    assert time.monotonic() - start < 1


def test_pcall_does_not_defeat_the_budget():
    outcome = run("while true do pcall(function() for i = 1, 1e9 do end end) end", timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE


def test_expression_candidates():
    assert expression_candidates("local a = 2\n  a * 3\n") == ["local a = 2\n  print(a * 3)\n"]
    assert expression_candidates("x") == ["print(x)"]
    assert expression_candidates("  x  ") == ["  print(x)", "print(x)"]
    assert expression_candidates("return x") == []
    assert expression_candidates("") == []
