"""Local filesystem disks for durable uploads and scratch space."""

from __future__ import annotations

import secrets
import shutil
from pathlib import Path

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "storage"})


class Disk:
    """A rooted filesystem namespace.

    All relative paths are resolved beneath :attr:`root`; paths that would
    escape the root raise :class:`ValueError`. The durable uploads disk and
    scratch disks are separate instances with separate roots.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @classmethod
    def scratch(cls, parent: Path | str, prefix: str = "import_") -> "Disk":
        """Create a fresh, uniquely named scratch disk below ``parent``."""

        base = Path(parent).expanduser().resolve()
        while True:
            candidate = base / f"{prefix}{secrets.token_hex(4)}"
            try:
                candidate.mkdir(parents=True, exist_ok=False)
            except FileExistsError:
                continue
            return cls(candidate)

    def path(self, relative: str | Path = "") -> Path:
        """Return the absolute path for ``relative`` inside this disk."""

        resolved = (self._root / relative).resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise ValueError(f"Path {str(relative)!r} escapes disk root {str(self._root)!r}")
        return resolved

    def put(self, relative: str | Path, data: bytes) -> Path:
        """Write ``data`` to ``relative``, creating parent directories."""

        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target

    def copy(self, source: Path | str, relative: str | Path) -> Path:
        """Copy an external file into this disk at ``relative``."""

        target = self.path(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return target

    def files(self, relative: str | Path = "", pattern: str = "*") -> list[Path]:
        """Return regular files directly under ``relative`` matching ``pattern``."""

        directory = self.path(relative)
        if not directory.is_dir():
            return []
        return sorted(path for path in directory.glob(pattern) if path.is_file())

    def exists(self, relative: str | Path) -> bool:
        return self.path(relative).exists()

    def delete_directory(self, relative: str | Path = "") -> None:
        """Remove ``relative`` recursively; an empty path removes the whole disk root."""

        target = self.path(relative)
        if not target.exists():
            return
        shutil.rmtree(target)
        LOGGER.info("disk_directory_deleted", extra={"path": str(target)})


__all__ = ["Disk"]
