"""StorageBackend — the ABC every attachment store implements."""

from __future__ import annotations

import abc

from .target import StorageTarget


class StorageBackend(abc.ABC):
    """Write-only object store for extracted attachments.

    Concrete backends translate their client library's failures into
    :class:`~mail2storage.errors.TransientStorageError` (retried) or
    :class:`~mail2storage.errors.PermanentStorageError` (not retried).
    ``put`` must not return before the backend acknowledged the write.
    """

    def __init__(self, target: StorageTarget, *, insecure: bool = False) -> None:
        self.target = target
        self.insecure = insecure

    async def start(self) -> None:
        """Open clients or connections.  Default is a no-op."""

    async def stop(self) -> None:
        """Release clients or connections.  Default is a no-op."""

    @abc.abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Store *data* under *key* (relative to the target prefix)."""
        ...

    def describe(self, key: str) -> str:
        """Human-readable location of *key*, for logs."""
        return f"{self.target.kind.value}://{self.target.location}/{self.target.object_key(key)}"
