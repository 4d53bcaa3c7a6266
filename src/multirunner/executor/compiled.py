"""
Process backend shared by every compiled (and CLI-interpreted) language.

One state machine serves all toolchains::

    ProbeToolchain -> Stage -> Compile -> LocateArtifact -> Execute

Each language is described by a :class:`ToolchainSpec`: which commands to
probe, how to compile, which artifact to expect and how to run it.  A
record without a compile command skips straight from staging to execution;
a record whose artifact is a WebAssembly module hands it to the WASM host
instead of spawning a process.

Compilation and execution are separate processes with separate timeouts.
The compiler gets the overall budget minus a fixed execution slice, since
compile time depends on the payload while running a snippet should not.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import (
    ArtifactMissing,
    CompileFailure,
    ExecutionTimeout,
    RuntimeFault,
    ToolchainUnavailable,
)
from ..output import format_process_output, is_benign_diagnostic
from .base import Backend, BackendCapabilities, ExecutionOutcome, ProcessResult, run_process
from .wasm import WasmBackend
from .workspace import Workspace

logger = logging.getLogger("multirunner.compiled")

Command = Tuple[str, ...]


@dataclass(frozen=True)
class Toolchain:
    """One way of building and running a language.

    Command templates may reference ``{source}``, ``{artifact}``,
    ``{workdir}`` and ``{entry}``.
    """

    name: str
    probes: Tuple[Command, ...]
    compile: Optional[Command] = None
    run: Optional[Command] = None
    env: Mapping[str, str] = field(default_factory=dict)
    # Set when the toolchain exists but cannot be used here; the text is
    # reported to the caller instead of attempting a build.
    unusable_reason: Optional[str] = None


@dataclass(frozen=True)
class ToolchainSpec:
    """Configuration record for one language served by :class:`CompiledBackend`."""

    language: str
    display_name: str
    source_name: str
    toolchains: Tuple[Toolchain, ...]
    install_hint: str
    artifact_names: Tuple[str, ...] = ()
    artifact_label: str = "binary"
    wasm_artifact: bool = False
    exec_slice_ms: Optional[int] = None
    entry_point: Optional[Callable[[str], str]] = None
    prepare_source: Optional[Callable[[str], str]] = None


def _render(template: Sequence[str], fields: Dict[str, str]) -> List[str]:
    return [part.format(**fields) for part in template]


class CompiledBackend(Backend):
    """Build and run a snippet with an external toolchain in its own workspace."""

    def __init__(
        self,
        spec: ToolchainSpec,
        workspace_root: str | Path,
        exec_slice_ms: int = 3000,
        probe_timeout_ms: int = 5000,
        wasm_host: Optional[WasmBackend] = None,
    ) -> None:
        self.spec = spec
        self.name = spec.language
        self.workspace_root = Path(workspace_root)
        self.exec_slice_ms = spec.exec_slice_ms or exec_slice_ms
        self.probe_timeout_ms = probe_timeout_ms
        self.wasm_host = wasm_host or (WasmBackend() if spec.wasm_artifact else None)
        self.capabilities = BackendCapabilities(
            has_compile_step=any(tc.compile is not None for tc in spec.toolchains),
            supports_hard_preemption=True,
            supports_step_budget=False,
        )

    async def execute(self, code: str, timeout_ms: int) -> ExecutionOutcome:
        spec = self.spec
        toolchain = await self.probe()

        entry = spec.entry_point(code) if spec.entry_point else "main"
        source_text = spec.prepare_source(code) if spec.prepare_source else code
        source_name = spec.source_name.format(entry=entry)
        artifact_names = [name.format(entry=entry) for name in spec.artifact_names]
        compile_timeout_ms = max(timeout_ms - self.exec_slice_ms, 1)

        with Workspace(self.workspace_root, f"{spec.language}-exec") as workspace:
            try:
                source = workspace.write_source(source_name, source_text)
                fields = {
                    "source": str(source),
                    "artifact": str(workspace.file(artifact_names[0])) if artifact_names else "",
                    "workdir": str(workspace.path),
                    "entry": entry,
                }
                run_timeout_ms = timeout_ms
                if toolchain.compile is not None:
                    await self._compile(toolchain, workspace, fields, compile_timeout_ms)
                    run_timeout_ms = self.exec_slice_ms
                if artifact_names:
                    fields["artifact"] = str(self._locate_artifact(workspace, artifact_names))
                if spec.wasm_artifact:
                    output = await self.wasm_host.run_binary(
                        Path(fields["artifact"]).read_bytes(), self.exec_slice_ms
                    )
                else:
                    output = await self._run(toolchain, workspace, fields, run_timeout_ms)
            finally:
                workspace.cleanup([source_name, *artifact_names])
        return ExecutionOutcome.success(output)

    async def probe(self) -> Toolchain:
        """Return the first available toolchain or raise :class:`ToolchainUnavailable`."""
        for index, toolchain in enumerate(self.spec.toolchains):
            if not await self._available(toolchain):
                continue
            if toolchain.unusable_reason:
                raise ToolchainUnavailable(toolchain.unusable_reason)
            if index:
                logger.warning(
                    "%s: primary toolchain missing, falling back to %s",
                    self.spec.language,
                    toolchain.name,
                )
            return toolchain
        raise ToolchainUnavailable(self.spec.install_hint)

    async def _available(self, toolchain: Toolchain) -> bool:
        for command in toolchain.probes:
            if shutil.which(command[0]) is None:
                return False
            try:
                result = await run_process(command, None, self.probe_timeout_ms)
            except OSError:
                return False
            if result.exit_code != 0:
                return False
        return True

    async def _compile(
        self,
        toolchain: Toolchain,
        workspace: Workspace,
        fields: Dict[str, str],
        timeout_ms: int,
    ) -> None:
        display = self.spec.display_name
        result = await self._spawn(toolchain, _render(toolchain.compile, fields), workspace, timeout_ms)
        if result.timed_out:
            raise ExecutionTimeout(f"{display} compilation timed out after {timeout_ms / 1000:g}s")
        if result.exit_code != 0:
            detail = (result.stderr or result.stdout).strip()
            message = f"{display} compilation failed: {toolchain.name} exited with code {result.exit_code}"
            raise CompileFailure(f"{message}\n{detail}" if detail else message)
        diagnostics = result.stderr.strip()
        if diagnostics and not is_benign_diagnostic(diagnostics):
            raise CompileFailure(f"Compilation error: {diagnostics}")

    def _locate_artifact(self, workspace: Workspace, names: Sequence[str]) -> Path:
        candidates = [workspace.file(name) for name in names]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        expected = " or ".join(str(path) for path in candidates)
        raise ArtifactMissing(
            f"Compilation completed but {self.spec.artifact_label} was not created. "
            f"Expected: {expected}"
        )

    async def _run(
        self,
        toolchain: Toolchain,
        workspace: Workspace,
        fields: Dict[str, str],
        timeout_ms: int,
    ) -> str:
        display = self.spec.display_name
        if toolchain.run is None:
            raise ArtifactMissing(f"{display} toolchain {toolchain.name} has no run command")
        result = await self._spawn(toolchain, _render(toolchain.run, fields), workspace, timeout_ms)
        if result.timed_out:
            raise ExecutionTimeout(
                f"{display} execution timed out after {timeout_ms / 1000:g}s"
            )
        if result.exit_code != 0:
            detail = (result.stderr or result.stdout).strip()
            message = f"{display} execution failed: process exited with code {result.exit_code}"
            raise RuntimeFault(f"{message}\n{detail}" if detail else message)
        return format_process_output(result.stdout, result.stderr)

    async def _spawn(
        self,
        toolchain: Toolchain,
        args: List[str],
        workspace: Workspace,
        timeout_ms: int,
    ) -> ProcessResult:
        env = {**os.environ, **toolchain.env}
        try:
            return await run_process(args, workspace.path, timeout_ms, env=env)
        except FileNotFoundError:
            raise ToolchainUnavailable(self.spec.install_hint) from None
