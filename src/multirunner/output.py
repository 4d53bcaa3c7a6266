"""Shaping of execution results into bounded, printable text."""

from __future__ import annotations

import json
from typing import Any

TRUNCATION_MARKER = "\n...[truncated]"
NO_OUTPUT_MESSAGE = "Code executed successfully (no output)"
SUCCESS_MESSAGE = "Code executed successfully"


def safe_stringify(value: Any) -> str:
    """Render ``value`` as text.

    Strings pass through verbatim, everything else is JSON-serialised and
    values JSON cannot represent fall back to ``str()``.
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def truncate_output(text: str, limit: int = 20000) -> str:
    """Cap ``text`` at ``limit`` characters, appending a marker when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def format_process_output(stdout: str, stderr: str) -> str:
    """Combine the error channel then the standard channel of a finished process.

    Never returns an empty string.
    """
    parts = [chunk.strip() for chunk in (stderr, stdout) if chunk and chunk.strip()]
    output = "\n".join(parts)
    return output or NO_OUTPUT_MESSAGE


def is_benign_diagnostic(stderr: str) -> bool:
    """Return True when compiler stderr only carries warnings or notes."""
    lowered = stderr.lower()
    return "warning" in lowered or "note:" in lowered
