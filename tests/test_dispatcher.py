"""Tests for language routing."""

from __future__ import annotations

import asyncio
import shutil

import pytest

from multirunner.config import GO_BINARY_TIMEOUT_MS, Config
from multirunner.dispatcher import Dispatcher
from multirunner.executor import CompiledBackend
from multirunner.output import TRUNCATION_MARKER


@pytest.fixture
def dispatcher(tmp_path):
    return Dispatcher(Config(workspace_root=str(tmp_path)))


def run(dispatcher: Dispatcher, language: str, code: str):
    return asyncio.run(dispatcher.run(language, code))


def test_unknown_language(dispatcher):
    outcome = run(dispatcher, "cobol", "DISPLAY 'HI'.")
    assert outcome.output is None
    assert outcome.error == "Language cobol not supported"


def test_tag_is_normalised(dispatcher):
    assert run(dispatcher, "  JS ", "1 + 1").output == "2"
    assert run(dispatcher, "Py", "6 * 7").output == "42"


def test_disabled_language_behaves_like_unknown(tmp_path):
    dispatcher = Dispatcher(Config(allowed_langs=["python"], workspace_root=str(tmp_path)))
    assert run(dispatcher, "javascript", "1").error == "Language javascript not supported"
    assert run(dispatcher, "python", "1").output == "1"


def test_go_payload_sniffing(dispatcher):
    binary = dispatcher.resolve("go", "AGFzbQEAAAA=")
    assert binary.backend is dispatcher.wasm
    assert binary.timeout_ms == GO_BINARY_TIMEOUT_MS

    source = dispatcher.resolve("go", "package main\n\nfunc main() {}")
    assert isinstance(source.backend, CompiledBackend)
    assert source.timeout_ms == 10000


def test_go_binary_budget_follows_config(tmp_path):
    dispatcher = Dispatcher(Config(go_binary_timeout_ms=750, workspace_root=str(tmp_path)))
    assert dispatcher.resolve("go", "AGFzbQEAAAA=").timeout_ms == 750


def test_zig_and_wasm_use_the_host(dispatcher):
    assert dispatcher.resolve("zig", "AGFzbQ==").backend is dispatcher.wasm
    assert dispatcher.resolve("wasm", "AGFzbQ==").backend is dispatcher.wasm


def test_output_is_truncated(tmp_path):
    dispatcher = Dispatcher(Config(max_output_chars=10, workspace_root=str(tmp_path)))
    assert run(dispatcher, "python", "print('x' * 25)").output == "x" * 10 + TRUNCATION_MARKER


def test_backend_crash_becomes_error(dispatcher, monkeypatch):
    async def explode(code, timeout_ms):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(dispatcher.backends["python"], "run", explode)
    outcome = run(dispatcher, "python", "1")
    assert outcome.output is None
    assert outcome.error == "kaboom"


def test_exactly_one_field_is_set(dispatcher):
    for language, code in [("python", "print(1)"), ("python", "1/0"), ("lua", "return 1"), ("wasm", "!!")]:
        outcome = run(dispatcher, language, code)
        assert (outcome.output is None) != (outcome.error is None)


def test_languages_listing(dispatcher):
    listing = {entry["language"]: entry for entry in dispatcher.languages()}
    assert listing["js"]["backend"] == "javascript"
    assert listing["cpp"]["has_compile_step"] is True
    assert listing["python"]["supports_step_budget"] is True
    assert listing["wasm"]["timeout_ms"] == 5000


@pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
def test_cpp_scenario(dispatcher):
    outcome = run(dispatcher, "cpp", "#include<iostream>\nint main(){std::cout<<1+2;}")
    assert "3" in outcome.output


def test_runaway_python_does_not_starve_other_backends(dispatcher):
    hostile = (
        "caught = 0\n"
        "while caught < 10:\n"
        "    try:\n"
        "        while True:\n"
        "            pass\n"
        "    except:\n"
        "        caught += 1"
    )
    dispatcher.config.timeouts_ms["python"] = 100

    async def scenario():
        await asyncio.gather(*(dispatcher.run("python", hostile) for _ in range(12)))
        return await dispatcher.run("javascript", "1 + 2"), await dispatcher.run("lua", "return 1 + 2")

    javascript, lua = asyncio.run(scenario())
    assert javascript.output == "3"
    assert lua.output == "3"


@pytest.mark.parametrize(
    "language, code",
    [
        ("python", "print('a')\nprint('b')"),
        ("python", "{'n': 1}"),
        ("javascript", "console.log('x'); [1, 2]"),
        ("lua", "return 1, 'two'"),
        ("wasm", "not base64!"),
    ],
)
def test_same_request_gives_the_same_outcome(dispatcher, language, code):
    assert run(dispatcher, language, code) == run(dispatcher, language, code)
