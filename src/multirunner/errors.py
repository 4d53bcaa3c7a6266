"""Error kinds raised by execution backends.

Every failure is terminal for the invocation that raised it and reaches
the caller as a single human-readable string.  Backends raise one of the
classes below; :meth:`multirunner.executor.base.Backend.run` turns them
into an error outcome.
"""

from __future__ import annotations


class ExecutionError(Exception):
    """Base class for failures reported to the caller verbatim."""

    kind = "execution_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ToolchainUnavailable(ExecutionError):
    """No usable compiler or runtime was found; the message says how to install one."""

    kind = "toolchain_unavailable"


class CompileFailure(ExecutionError):
    kind = "compile_failure"


class ArtifactMissing(ExecutionError):
    kind = "artifact_missing"


class RuntimeFault(ExecutionError):
    kind = "runtime_fault"


class ExecutionTimeout(ExecutionError):
    kind = "timeout"


class MalformedInput(ExecutionError):
    """Bad encoding, invalid binary header or an unsupported language tag."""

    kind = "malformed_input"


class UnsupportedFeature(ExecutionError):
    kind = "unsupported_feature"
