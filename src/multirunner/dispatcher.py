"""
Routing of execution requests to backends.

The dispatcher owns one backend instance per language family and maps
every accepted language tag onto one of them together with its time
budget.  It is the last line of defence: whatever a backend raises, the
caller receives an :class:`ExecutionOutcome` with either output or an
error, and output never exceeds the configured size.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from .config import Config
from .executor import (
    TOOLCHAIN_SPECS,
    Backend,
    CompiledBackend,
    ExecutionOutcome,
    JavaScriptBackend,
    LuaBackend,
    PythonBackend,
    WasmBackend,
)
from .output import truncate_output
from .sniffing import looks_like_go_source

logger = logging.getLogger("multirunner.dispatcher")

ALIASES = {"js": "javascript", "py": "python"}


@dataclass
class Route:
    backend: Backend
    timeout_ms: int


def normalize_language(language: str) -> str:
    return (language or "").strip().lower()


class Dispatcher:
    """Select a backend for a language tag and run code through it."""

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or Config()
        cfg = self.config
        self.wasm = WasmBackend()
        self.backends: Dict[str, Backend] = {
            "javascript": JavaScriptBackend(max_memory_mb=cfg.max_memory_mb),
            "python": PythonBackend(
                blocked_imports=cfg.python_blocked_imports,
                blocked_builtins=cfg.python_blocked_builtins,
            ),
            "lua": LuaBackend(max_memory_mb=cfg.max_memory_mb),
            "wasm": self.wasm,
        }
        for language, spec in TOOLCHAIN_SPECS.items():
            self.backends[language] = CompiledBackend(
                spec,
                cfg.workspace_root,
                exec_slice_ms=cfg.exec_slice_ms,
                probe_timeout_ms=cfg.probe_timeout_ms,
                wasm_host=self.wasm,
            )
        # zig has no toolchain here; its payloads are prebuilt modules.
        self.backends["zig"] = self.wasm

    def is_enabled(self, language: str) -> bool:
        return language in self.config.allowed_langs

    def resolve(self, language: str, code: str) -> Optional[Route]:
        """Return the route for ``language`` or None when it is not served."""
        if not self.is_enabled(language):
            return None
        timeout_ms = self.config.timeout_for(language)
        if language == "go" and not looks_like_go_source(code):
            logger.debug("go payload has no source markers, treating it as a WASM binary")
            return Route(self.wasm, self.config.go_binary_timeout_ms)
        backend = self.backends.get(ALIASES.get(language, language))
        if backend is None:
            return None
        return Route(backend, timeout_ms)

    async def run(self, language: str, code: str, request_id: str = "-") -> ExecutionOutcome:
        """Execute ``code`` as ``language``; never raises."""
        tag = normalize_language(language)
        route = self.resolve(tag, code)
        if route is None:
            logger.info("[%s] unsupported language %r", request_id, tag)
            return ExecutionOutcome.failure(f"Language {tag} not supported")

        logger.info(
            "[%s] running %s via %s (budget %d ms, %d chars)",
            request_id,
            tag,
            route.backend.name,
            route.timeout_ms,
            len(code),
        )
        start_time = time.perf_counter()
        try:
            outcome = await route.backend.run(code, route.timeout_ms)
        except Exception as exc:
            logger.exception("[%s] %s backend crashed", request_id, route.backend.name)
            outcome = ExecutionOutcome.failure(str(exc) or type(exc).__name__)
        logger.info(
            "[%s] %s finished in %d ms (%s)",
            request_id,
            tag,
            int((time.perf_counter() - start_time) * 1000),
            "error" if outcome.error is not None else "ok",
        )
        return self.shape(outcome)

    def shape(self, outcome: ExecutionOutcome) -> ExecutionOutcome:
        limit = self.config.max_output_chars
        if outcome.error is not None:
            return ExecutionOutcome.failure(truncate_output(outcome.error, limit))
        return ExecutionOutcome.success(truncate_output(outcome.output or "", limit))

    def languages(self) -> List[dict]:
        """Describe every enabled language tag."""
        listing = []
        for tag in self.config.allowed_langs:
            backend = self.backends.get(ALIASES.get(tag, tag))
            if backend is None:
                continue
            caps = backend.capabilities
            listing.append(
                {
                    "language": tag,
                    "backend": backend.name,
                    "timeout_ms": self.config.timeout_for(tag),
                    "has_compile_step": caps.has_compile_step,
                    "supports_hard_preemption": caps.supports_hard_preemption,
                    "supports_step_budget": caps.supports_step_budget,
                }
            )
        return listing
