"""Local filesystem storage.

Blocking file I/O runs in a worker thread via ``asyncio.to_thread()``.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import structlog

from ..errors import PermanentStorageError, TransientStorageError
from .base import StorageBackend
from .target import StorageTarget

logger = structlog.get_logger()

_PERMANENT_OS_ERRORS = (
    PermissionError,
    IsADirectoryError,
    NotADirectoryError,
    FileExistsError,
)


class LocalStorage(StorageBackend):
    """Write attachments below a root directory."""

    def __init__(self, target: StorageTarget, *, insecure: bool = False) -> None:
        super().__init__(target, insecure=insecure)
        self._root = Path(target.location).expanduser()

    async def start(self) -> None:
        logger.info("local_storage_started", root=str(self._root))

    async def put(self, key: str, data: bytes) -> None:
        path = self._resolve(key)
        try:
            await asyncio.to_thread(_atomic_write, path, data)
        except _PERMANENT_OS_ERRORS as exc:
            raise PermanentStorageError(f"cannot write {path}: {exc}") from exc
        except OSError as exc:
            raise TransientStorageError(f"cannot write {path}: {exc}") from exc
        logger.debug("local_object_written", path=str(path), size=len(data))

    def _resolve(self, key: str) -> Path:
        relative = Path(self.target.object_key(key))
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise PermanentStorageError(f"invalid storage path: {key!r}")
        return self._root / relative


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
