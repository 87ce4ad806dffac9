"""
filesystem.py

The narrow storage contract the pipeline writes through.

read_file / write_file / exists, nothing else. RealFileSystem talks to disk;
InMemoryFileSystem is a dict and is what the tests use.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .errors import ErrorKind, ExportError

DEFAULT_PERMISSIONS = 0o644


class FileSystem(Protocol):
    def read_file(self, path: str) -> bytes: ...

    def write_file(self, path: str, data: bytes, permissions: int = DEFAULT_PERMISSIONS) -> None: ...

    def exists(self, path: str) -> bool: ...


def _io_error(path: str, operation: str, exc: OSError) -> ExportError:
    return ExportError(ErrorKind.IO_FAILURE, exc.strerror or str(exc), path=path, operation=operation)


class RealFileSystem:
    """
    Disk-backed FileSystem.

    Writes go to a temp file next to the destination and are moved into place
    with os.replace, so a destination is either the old file or the complete
    new one.
    """

    def read_file(self, path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise _io_error(path, "read", exc) from exc

    def write_file(self, path: str, data: bytes, permissions: int = DEFAULT_PERMISSIONS) -> None:
        target = Path(path)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp_name, permissions)
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as exc:
            raise _io_error(path, "write", exc) from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def exists(self, path: str) -> bool:
        return Path(path).exists()


class InMemoryFileSystem:
    """Dict-backed FileSystem. `files` maps path -> bytes, `modes` path -> permissions."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self.files: Dict[str, bytes] = dict(files or {})
        self.modes: Dict[str, int] = {}
        self.writes: List[str] = []

    def read_file(self, path: str) -> bytes:
        if path not in self.files:
            raise ExportError(ErrorKind.IO_FAILURE, "no such file", path=path, operation="read")
        return self.files[path]

    def write_file(self, path: str, data: bytes, permissions: int = DEFAULT_PERMISSIONS) -> None:
        self.files[path] = bytes(data)
        self.modes[path] = permissions
        self.writes.append(path)

    def exists(self, path: str) -> bool:
        return path in self.files
