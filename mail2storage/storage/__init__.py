"""Attachment storage backends.

Exactly one backend is active per run.  The cloud backends import their
client libraries at module level, so they are only imported once selected.
"""

from __future__ import annotations

from ..config import Mail2StorageConfig, StorageKind
from .base import StorageBackend
from .target import StorageTarget, resolve_target

__all__ = [
    "StorageBackend",
    "StorageTarget",
    "create_storage",
    "resolve_target",
]


def create_storage(config: Mail2StorageConfig) -> StorageBackend:
    """Instantiate the backend selected by ``config.storage``."""
    target = resolve_target(config.storage)
    insecure = config.insecure

    if target.kind is StorageKind.LOCAL:
        from .local import LocalStorage

        return LocalStorage(target, insecure=insecure)

    if target.kind is StorageKind.HTTP:
        from .http import HttpStorage

        return HttpStorage(target, config.http, insecure=insecure)

    if target.kind is StorageKind.S3:
        from .s3 import S3Storage

        return S3Storage(target, config.s3, insecure=insecure)

    if target.kind is StorageKind.AZURE:
        from .azure import AzureStorage

        return AzureStorage(target, config.azure, insecure=insecure)

    from .gcs import GcsStorage

    return GcsStorage(target, config.gcs, insecure=insecure)
