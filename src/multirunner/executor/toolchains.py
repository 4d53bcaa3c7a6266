"""Toolchain descriptions for the languages served by :class:`CompiledBackend`."""

from __future__ import annotations

import re
from typing import Dict

from .compiled import Toolchain, ToolchainSpec

TINYGO_URL = "https://tinygo.org/getting-started/install/"
TINYGO_WINDOWS = (
    "Windows: Download from https://github.com/tinygo-org/tinygo/releases "
    "or use: choco install tinygo"
)

_JAVA_CLASS = re.compile(r"public\s+class\s+(\w+)")


def java_class_name(code: str) -> str:
    """Name of the first public class, ``Main`` when there is none."""
    match = _JAVA_CLASS.search(code)
    return match.group(1) if match else "Main"


def php_source(code: str) -> str:
    """Prefix the PHP open tag unless the snippet already starts with one."""
    if code.lstrip().startswith("<?"):
        return code
    return "<?php " + code


def _native(name: str, probe: str, *compile_args: str) -> Toolchain:
    return Toolchain(
        name=name,
        probes=((probe, "--version"),),
        compile=(name, "{source}", "-o", "{artifact}", *compile_args),
        run=("{artifact}",),
    )


C = ToolchainSpec(
    language="c",
    display_name="C",
    source_name="main.c",
    toolchains=(_native("gcc", "gcc"), _native("clang", "clang")),
    artifact_names=("main", "main.exe"),
    install_hint=(
        "C compiler (gcc or clang) not found. Please install a C compiler: "
        "Windows: Install MinGW-w64 or Visual Studio Build Tools, "
        "Linux: sudo apt install gcc or sudo yum install gcc, "
        "Mac: xcode-select --install or install Xcode"
    ),
)

CPP = ToolchainSpec(
    language="cpp",
    display_name="C++",
    source_name="main.cpp",
    toolchains=(
        _native("g++", "g++", "-std=c++17"),
        _native("clang++", "clang++", "-std=c++17"),
    ),
    artifact_names=("main", "main.exe"),
    install_hint=(
        "C++ compiler (g++ or clang++) not found. Please install a C++ compiler: "
        "Windows: Install MinGW-w64 or Visual Studio Build Tools, "
        "Linux: sudo apt install g++ or sudo yum install gcc-c++, "
        "Mac: xcode-select --install or install Xcode"
    ),
)

RUST = ToolchainSpec(
    language="rust",
    display_name="Rust",
    source_name="main.rs",
    toolchains=(_native("rustc", "rustc"),),
    artifact_names=("main", "main.exe"),
    install_hint=(
        "Rust compiler (rustc) not found. "
        "Please install Rust: https://www.rust-lang.org/tools/install "
        "Or install rustc directly from your package manager."
    ),
)

JAVA = ToolchainSpec(
    language="java",
    display_name="Java",
    source_name="{entry}.java",
    toolchains=(
        Toolchain(
            name="javac",
            probes=(("javac", "-version"), ("java", "-version")),
            compile=("javac", "{source}"),
            run=("java", "-cp", "{workdir}", "{entry}"),
        ),
    ),
    artifact_names=("{entry}.class",),
    artifact_label="class file",
    entry_point=java_class_name,
    install_hint=(
        "Java compiler (javac) or runtime (java) not found. "
        "Please install Java JDK: https://www.oracle.com/java/technologies/downloads/ "
        "or OpenJDK: https://openjdk.org/"
    ),
)

GO = ToolchainSpec(
    language="go",
    display_name="Go",
    source_name="main.go",
    toolchains=(
        Toolchain(
            name="tinygo",
            probes=(("tinygo", "version"),),
            compile=("tinygo", "build", "-target", "wasi", "-o", "{artifact}", "{source}"),
        ),
        Toolchain(
            name="go",
            probes=(("go", "version"),),
            unusable_reason=(
                "Regular Go compiler found, but it's not suitable for WASM execution in this "
                "environment. Regular Go's WASM output requires wasm_exec.js runtime which has "
                "complex dependencies. Please install TinyGo instead - it's designed for WASM "
                f"and works much better: {TINYGO_URL} {TINYGO_WINDOWS}"
            ),
        ),
    ),
    artifact_names=("main.wasm",),
    artifact_label="WASM file",
    wasm_artifact=True,
    exec_slice_ms=2000,
    install_hint=(
        "No Go compiler found. TinyGo is required for WASM compilation. "
        f"Please install TinyGo: {TINYGO_URL} {TINYGO_WINDOWS}"
    ),
)

PHP = ToolchainSpec(
    language="php",
    display_name="PHP",
    source_name="main.php",
    toolchains=(
        Toolchain(
            name="php",
            probes=(("php", "--version"),),
            run=("php", "{source}"),
        ),
    ),
    prepare_source=php_source,
    install_hint=(
        "PHP interpreter (php) not found. "
        "Please install PHP: https://www.php.net/downloads.php "
        "Linux: sudo apt install php-cli, Mac: brew install php"
    ),
)

TOOLCHAIN_SPECS: Dict[str, ToolchainSpec] = {
    spec.language: spec for spec in (C, CPP, RUST, JAVA, GO, PHP)
}
