"""Call-scoped filesystem workspaces for process backends."""

from __future__ import annotations

import logging
import secrets
import shutil
import time
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger("multirunner.workspace")


class Workspace:
    """An ephemeral directory owned by exactly one invocation.

    The directory name carries a millisecond timestamp and a random suffix
    so concurrent invocations never collide.  Use it as a context manager;
    :meth:`cleanup` runs on every exit path and never raises.
    """

    def __init__(self, root: str | Path, prefix: str) -> None:
        self.root = Path(root)
        self.prefix = prefix
        self.path: Optional[Path] = None

    def __enter__(self) -> "Workspace":
        self.root.mkdir(parents=True, exist_ok=True)
        name = f"{self.prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
        self.path = self.root / name
        self.path.mkdir()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def file(self, name: str) -> Path:
        if self.path is None:
            raise RuntimeError("Workspace is not open")
        return self.path / name

    def write_source(self, name: str, text: str) -> Path:
        source = self.file(name)
        source.write_text(text, encoding="utf-8")
        return source

    def cleanup(self, names: Iterable[str] = ()) -> None:
        """Remove the named files, then the directory itself, best effort."""
        if self.path is None:
            return
        for name in names:
            try:
                (self.path / name).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Unable to remove %s: %s", self.path / name, exc)
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Unable to remove workspace %s: %s", self.path, exc)
        self.path = None
