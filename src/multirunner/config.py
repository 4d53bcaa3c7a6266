"""Configuration loader.

The runner reads its configuration from environment variables so the same
image can run in several contexts (docker-compose, a bare VM, CI).
Reasonable defaults are provided so that local development works out of
the box.

Environment variables:

``MULTIRUNNER_API_KEY``
    Shared secret expected in the ``x-api-key`` header.  Authentication is
    skipped when empty (the default).

``MULTIRUNNER_ALLOWED_LANGS``
    Comma-separated list of language tags accepted by ``/run``.  Defaults to
    every tag the dispatcher knows about.

``MULTIRUNNER_WORKSPACE_ROOT``
    Directory under which per-call workspaces for compiled languages are
    created.  Defaults to the system temporary directory.

``MULTIRUNNER_MAX_OUTPUT_CHARS``
    Output is truncated past this many characters.  Default is 20000.

``MULTIRUNNER_MAX_BODY_BYTES``
    Largest accepted request body.  Default is 1 MiB.

``MULTIRUNNER_MAX_MEMORY_MB``
    Heap cap applied to the in-process JavaScript and Lua engines.  Default
    is 256.

``MULTIRUNNER_EXEC_SLICE_MS``
    Share of a compiled language's budget reserved for running the built
    artifact.  The rest goes to the compiler.  Default is 3000.

``MULTIRUNNER_PROBE_TIMEOUT_MS``
    Timeout of a single toolchain availability probe.  Default is 5000.

``MULTIRUNNER_TIMEOUT_<TAG>_MS``
    Per-language wall-clock budget, e.g. ``MULTIRUNNER_TIMEOUT_CPP_MS``.

``MULTIRUNNER_TIMEOUT_GO_BINARY_MS``
    Budget for a ``go`` payload that turns out to be a precompiled
    WebAssembly binary.  Default is 5000.

``MULTIRUNNER_PYTHON_BLOCKED_IMPORTS`` / ``MULTIRUNNER_PYTHON_BLOCKED_BUILTINS``
    Comma-separated module roots and builtin names hidden from Python
    snippets.

``MULTIRUNNER_LOG_LEVEL``
    Logging level name.  Defaults to ``INFO``.

``HOST`` / ``PORT``
    Address the API server binds to.  Defaults to ``0.0.0.0:3000``.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List

DEFAULT_TIMEOUTS_MS: Dict[str, int] = {
    "javascript": 2000,
    "js": 2000,
    "python": 6000,
    "py": 6000,
    "lua": 3000,
    "php": 4000,
    "c": 10000,
    "cpp": 10000,
    "rust": 10000,
    "java": 8000,
    "go": 10000,
    "wasm": 5000,
    "zig": 5000,
}

# Default budget used when a ``go`` payload turns out to be a precompiled binary.
GO_BINARY_TIMEOUT_MS = 5000

DEFAULT_BLOCKED_IMPORTS = [
    "os",
    "sys",
    "subprocess",
    "socket",
    "ctypes",
    "importlib",
    "shutil",
    "signal",
    "threading",
    "multiprocessing",
]
DEFAULT_BLOCKED_BUILTINS = [
    "open",
    "exec",
    "eval",
    "compile",
    "breakpoint",
    "input",
    "exit",
    "quit",
]


def _parse_list(value: str | None, default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _int_var(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {val}")


@dataclass
class Config:
    """Centralised configuration object."""

    api_key: str = ""
    allowed_langs: List[str] = field(default_factory=lambda: list(DEFAULT_TIMEOUTS_MS))
    workspace_root: str = field(default_factory=tempfile.gettempdir)
    max_output_chars: int = 20000
    max_body_bytes: int = 1024 * 1024
    max_memory_mb: int = 256
    exec_slice_ms: int = 3000
    probe_timeout_ms: int = 5000
    timeouts_ms: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TIMEOUTS_MS))
    go_binary_timeout_ms: int = GO_BINARY_TIMEOUT_MS
    python_blocked_imports: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_IMPORTS))
    python_blocked_builtins: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_BUILTINS))
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3000

    def timeout_for(self, language: str) -> int:
        """Return the wall-clock budget in milliseconds for ``language``."""
        return self.timeouts_ms.get(language, DEFAULT_TIMEOUTS_MS.get(language, 5000))

    @classmethod
    def load(cls) -> "Config":
        api_key = os.getenv("MULTIRUNNER_API_KEY", "")

        allowed_langs = [
            lang.lower()
            for lang in _parse_list(os.getenv("MULTIRUNNER_ALLOWED_LANGS"), list(DEFAULT_TIMEOUTS_MS))
        ]
        unknown = [lang for lang in allowed_langs if lang not in DEFAULT_TIMEOUTS_MS]
        if unknown:
            raise ValueError(f"Invalid MULTIRUNNER_ALLOWED_LANGS entries: {', '.join(unknown)}")

        workspace_root = os.getenv("MULTIRUNNER_WORKSPACE_ROOT") or tempfile.gettempdir()

        timeouts_ms = {
            lang: _int_var(f"MULTIRUNNER_TIMEOUT_{lang.upper()}_MS", default)
            for lang, default in DEFAULT_TIMEOUTS_MS.items()
        }
        for lang, value in timeouts_ms.items():
            if value <= 0:
                raise ValueError(f"Timeout for {lang} must be positive, got {value}")
        go_binary_timeout_ms = _int_var("MULTIRUNNER_TIMEOUT_GO_BINARY_MS", GO_BINARY_TIMEOUT_MS)
        if go_binary_timeout_ms <= 0:
            raise ValueError(
                f"MULTIRUNNER_TIMEOUT_GO_BINARY_MS must be positive, got {go_binary_timeout_ms}"
            )

        exec_slice_ms = _int_var("MULTIRUNNER_EXEC_SLICE_MS", 3000)
        if exec_slice_ms <= 0:
            raise ValueError(f"MULTIRUNNER_EXEC_SLICE_MS must be positive, got {exec_slice_ms}")

        return cls(
            api_key=api_key,
            allowed_langs=allowed_langs,
            workspace_root=workspace_root,
            max_output_chars=_int_var("MULTIRUNNER_MAX_OUTPUT_CHARS", 20000),
            max_body_bytes=_int_var("MULTIRUNNER_MAX_BODY_BYTES", 1024 * 1024),
            max_memory_mb=_int_var("MULTIRUNNER_MAX_MEMORY_MB", 256),
            exec_slice_ms=exec_slice_ms,
            probe_timeout_ms=_int_var("MULTIRUNNER_PROBE_TIMEOUT_MS", 5000),
            timeouts_ms=timeouts_ms,
            go_binary_timeout_ms=go_binary_timeout_ms,
            python_blocked_imports=_parse_list(
                os.getenv("MULTIRUNNER_PYTHON_BLOCKED_IMPORTS"), DEFAULT_BLOCKED_IMPORTS
            ),
            python_blocked_builtins=_parse_list(
                os.getenv("MULTIRUNNER_PYTHON_BLOCKED_BUILTINS"), DEFAULT_BLOCKED_BUILTINS
            ),
            log_level=os.getenv("MULTIRUNNER_LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int_var("PORT", 3000),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Alternate constructor used by the API to load configuration.

        This wrapper calls :meth:`load` to construct the configuration.
        It exists to provide a more intuitive name when consumed in
        application code.
        """
        return cls.load()
