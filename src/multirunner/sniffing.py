"""Heuristics telling source text apart from an encoded binary.

These checks look for keyword substrings only.  Minified or obfuscated
source can be misclassified; the behaviour is kept deliberately simple
and matches what callers of the service already rely on.
"""

from __future__ import annotations

import re
from typing import Optional

_GO_MARKERS = ("package ", "import ", "func main()")
_C_MAIN = re.compile(r"^\s*(int|void|char|float|double)\s+main\s*\(")

COMPILE_HINTS = {
    "Go": "For Go, use TinyGo: tinygo build -target wasm -o output.wasm yourfile.go",
    "C/C++": "For C/C++, use Emscripten: emcc yourfile.c -o output.wasm",
    "Rust": "For Rust, use: rustc --target wasm32-unknown-unknown yourfile.rs",
}


def looks_like_go_source(payload: str) -> bool:
    """Decide whether a ``go`` payload is source code rather than a WASM binary."""
    text = payload.strip()
    return any(marker in text for marker in _GO_MARKERS)


def detect_source_language(payload: str) -> Optional[str]:
    """Return a display name for the language ``payload`` appears to be written in."""
    text = payload.strip()
    if looks_like_go_source(text):
        return "Go"
    if "#include" in text or _C_MAIN.match(text):
        return "C/C++"
    if "fn main()" in text or ("use " in text and "::" in text):
        return "Rust"
    if "public class" in text or "public static void main" in text:
        return "Java"
    return None


def compile_first_message(language: str) -> str:
    hint = COMPILE_HINTS.get(language, f"For {language}, you'll need to use the appropriate compiler.")
    return (
        f"{language} source code is not supported directly. "
        "Please compile your code to WebAssembly (.wasm) first, then provide the binary "
        f"as a base64-encoded string. {hint}"
    )
