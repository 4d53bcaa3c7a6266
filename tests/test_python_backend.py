"""Tests for the in-process Python backend."""

from __future__ import annotations

import asyncio
import threading
import time

from multirunner.executor.python import PythonBackend
from multirunner.output import SUCCESS_MESSAGE
from multirunner.timeouts import TIMEOUT_MESSAGE


def run(code: str, timeout_ms: int = 6000, backend: PythonBackend = None):
    return asyncio.run((backend or PythonBackend()).run(code, timeout_ms))


def test_print_is_captured():
    assert run("print('hello')\nprint(1, 2, sep='-', end='!')").output == "hello\n1-2!"


def test_trailing_expression_value():
    assert run("x = 20\nx + 22").output == "42"
    assert run("'text'").output == "text"


def test_values_are_json_serialised():
    assert run("[1, 'a']").output == '[1, "a"]'
    assert run("True").output == "true"
    assert run("{'a': 1}").output == '{"a": 1}'
    assert run("[None, True]").output == "[null, true]"
    assert run("(1, 2)").output == "[1, 2]"


def test_values_json_cannot_represent_fall_back_to_text():
    assert run("{3}").output == "{3}"
    assert run("object").output == "<class 'object'>"


def test_statement_only_gives_canned_message():
    assert run("x = 5").output == SUCCESS_MESSAGE
    assert run("None").output == SUCCESS_MESSAGE


def test_blocked_import():
    assert run("import os").error == "ImportError: Import 'os' is blocked by policy"
    assert run("from subprocess import run").error.startswith("ImportError")


def test_allowed_import():
    assert run("import math\nmath.sqrt(16)").output == "4.0"


def test_blocked_builtin():
    assert run("open('/etc/passwd')").error == "NameError: name 'open' is not defined"


def test_custom_policy():
    backend = PythonBackend(blocked_imports=["json"], blocked_builtins=["len"])
    assert run("import json", backend=backend).error.startswith("ImportError")
    assert run("len('abc')", backend=backend).error == "NameError: name 'len' is not defined"
    assert run("import os\nos.sep", backend=backend).output == "/"


def test_runtime_error():
    assert run("1 / 0").error == "ZeroDivisionError: division by zero"


def test_syntax_error():
    assert run("def broken(:").error.startswith("SyntaxError")


def test_system_exit():
    assert run("raise SystemExit(0)").output == SUCCESS_MESSAGE
    assert run("raise SystemExit(2)").error == "SystemExit: 2"


def test_namespaces_are_not_shared():
    run("shared = 1")
    assert run("shared").error == "NameError: name 'shared' is not defined"


def test_infinite_loop_times_out():
    start = time.monotonic()
    outcome = run("while True:\n    pass", timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE
    assert time.monotonic() - start < 1


def test_catching_exceptions_does_not_defeat_the_budget():
    code = "while True:\n    try:\n        pass\n    except Exception:\n        pass"
    outcome = run(code, timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE


def test_print_honours_file_argument():
    code = (
        "class Sink:\n"
        "    def __init__(self):\n"
        "        self.parts = []\n"
        "    def write(self, text):\n"
        "        self.parts.append(text)\n"
        "sink = Sink()\n"
        "print('x', 'y', file=sink)\n"
        "''.join(sink.parts)"
    )
    assert run(code).output == "x y\n"


def test_bare_except_does_not_defeat_the_budget():
    code = (
        "caught = 0\n"
        "while caught < 3:\n"
        "    try:\n"
        "        while True:\n"
        "            pass\n"
        "    except:\n"
        "        caught += 1\n"
        "while True:\n"
        "    pass"
    )
    outcome = run(code, timeout_ms=100)
    assert outcome.error == TIMEOUT_MESSAGE

    # the worker keeps receiving the deadline until it gives up
    deadline = time.monotonic() + 3
    while _python_workers() and time.monotonic() < deadline:
        time.sleep(0.05)
    assert _python_workers() == []


def test_runaway_snippets_do_not_hold_up_other_calls():
    hostile = (
        "caught = 0\n"
        "while caught < 10:\n"
        "    try:\n"
        "        while True:\n"
        "            pass\n"
        "    except BaseException:\n"
        "        caught += 1"
    )

    async def scenario():
        backend = PythonBackend()
        outcomes = await asyncio.gather(*(backend.run(hostile, 100) for _ in range(12)))
        return outcomes, await backend.run("1 + 1", 5000)

    outcomes, after = asyncio.run(scenario())
    assert {outcome.error for outcome in outcomes} == {TIMEOUT_MESSAGE}
    assert after.output == "2"


def test_same_snippet_gives_the_same_result_twice():
    code = "values = [n * n for n in range(4)]\nprint(values)\nsum(values)"
    first, second = run(code), run(code)
    assert first == second
    assert first.output == "[0, 1, 4, 9]"


def _python_workers():
    return [thread for thread in threading.enumerate() if thread.name == "multirunner-python" and thread.is_alive()]
