"""Filesystem capability handed to the sync components.

Everything that touches vault files goes through a ``FileSystem`` bound to
the vault root, so tests can swap in an in-memory implementation.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, Union, runtime_checkable


@runtime_checkable
class FileSystem(Protocol):
    """Read/write/list/mkdir/stat over paths relative to a root."""

    @property
    def root(self) -> Path:
        ...

    def read_text(self, rel_path: str) -> str:
        """Return file content. Raises FileNotFoundError if missing."""
        ...

    def write_text(self, rel_path: str, content: str) -> None:
        ...

    def list_dir(self, rel_path: str = "") -> list[str]:
        ...

    def mkdir(self, rel_path: str) -> None:
        ...

    def stat(self, rel_path: str) -> os.stat_result:
        """Raises FileNotFoundError if missing."""
        ...

    def exists(self, rel_path: str) -> bool:
        ...

    def is_dir(self, rel_path: str) -> bool:
        ...


class LocalFileSystem:
    """``FileSystem`` backed by the local disk."""

    def __init__(self, root: Union[str, Path]) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, rel_path: str) -> Path:
        return self._root / rel_path if rel_path else self._root

    def read_text(self, rel_path: str) -> str:
        return self._resolve(rel_path).read_text(encoding="utf-8")

    def write_text(self, rel_path: str, content: str) -> None:
        self._resolve(rel_path).write_text(content, encoding="utf-8")

    def list_dir(self, rel_path: str = "") -> list[str]:
        return sorted(entry.name for entry in self._resolve(rel_path).iterdir())

    def mkdir(self, rel_path: str) -> None:
        self._resolve(rel_path).mkdir(parents=True, exist_ok=True)

    def stat(self, rel_path: str) -> os.stat_result:
        return self._resolve(rel_path).stat()

    def exists(self, rel_path: str) -> bool:
        return self._resolve(rel_path).exists()

    def is_dir(self, rel_path: str) -> bool:
        return self._resolve(rel_path).is_dir()

    def __repr__(self) -> str:
        return f"LocalFileSystem({str(self._root)!r})"

