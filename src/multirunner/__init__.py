"""Multi-language code runner.

This package accepts source code tagged with a language, executes it in
an isolated backend and returns the captured output or an error, bounded
by a per-language timeout.

The top-level modules include:

* ``config`` - configuration handling for environment variables.
* ``errors`` - the error kinds backends report.
* ``output`` and ``timeouts`` - result shaping and the deadline race.
* ``sniffing`` - telling source code apart from encoded binaries.
* ``executor`` - compiled, in-process and WebAssembly backends.
* ``dispatcher`` - language routing.
* ``models`` and ``api`` - the FastAPI application exposing HTTP endpoints.
"""

__version__ = "0.1.0"
