"""Tests for the deadline race."""

from __future__ import annotations

import asyncio
import time

import pytest

from multirunner.errors import ExecutionTimeout
from multirunner.timeouts import TIMEOUT_MESSAGE, run_with_timeout


async def _value(delay: float, value: str) -> str:
    await asyncio.sleep(delay)
    return value


def test_returns_result_before_deadline():
    assert asyncio.run(run_with_timeout(_value(0, "done"), 1000)) == "done"


def test_raises_timeout_when_deadline_elapses():
    start = time.monotonic()
    with pytest.raises(ExecutionTimeout) as excinfo:
        asyncio.run(run_with_timeout(_value(5, "late"), 100))
    assert str(excinfo.value) == TIMEOUT_MESSAGE
    assert excinfo.value.kind == "timeout"
    assert time.monotonic() - start < 1
