"""Tests for the embedded V8 backend."""

from __future__ import annotations

import asyncio
import time

from multirunner.executor.javascript import JavaScriptBackend
from multirunner.output import SUCCESS_MESSAGE
from multirunner.timeouts import TIMEOUT_MESSAGE


def run(code: str, timeout_ms: int = 2000):
    return asyncio.run(JavaScriptBackend().run(code, timeout_ms))


def test_console_output_is_captured():
    assert run("console.log('hello'); console.error('oops', 2)").output == "hello\noops 2"


def test_console_formats_objects_as_json():
    assert run("console.log({a: 1}, [1, 2])").output == '{"a":1} [1,2]'


def test_last_expression_value():
    assert run("1 + 2").output == "3"
    assert run("'verbatim'").output == "verbatim"
    assert run("({a: [1, true]})").output == '{"a":[1,true]}'


def test_captured_output_wins_over_value():
    assert run("console.log('printed'); 42").output == "printed"


def test_undefined_result_gives_canned_message():
    assert run("let x = 1;").output == SUCCESS_MESSAGE


def test_thrown_error_is_reported():
    outcome = run("throw new Error('boom')")
    assert outcome.output is None
    assert "boom" in outcome.error


def test_syntax_error_is_reported():
    outcome = run("function (")
    assert outcome.output is None
    assert "SyntaxError" in outcome.error


def test_contexts_are_not_shared():
    run("var leaked = 5")
    assert run("typeof leaked").output == "undefined"


def test_infinite_loop_times_out():
    start = time.monotonic()
    outcome = run("while(true){}", timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE
    assert time.monotonic() - start < 1
