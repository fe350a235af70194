"""Resolve the configured storage URL into a single backend target."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from ..config import StorageConfig, StorageKind
from ..errors import ConfigError

_SCHEMES = {
    "": StorageKind.LOCAL,
    "file": StorageKind.LOCAL,
    "http": StorageKind.HTTP,
    "https": StorageKind.HTTP,
    "s3": StorageKind.S3,
    "az": StorageKind.AZURE,
    "azure": StorageKind.AZURE,
    "gs": StorageKind.GCS,
    "gcs": StorageKind.GCS,
}

_BUCKET_KINDS = (StorageKind.S3, StorageKind.AZURE, StorageKind.GCS)


@dataclass(frozen=True)
class StorageTarget:
    """Where attachments go.

    ``location`` is a directory for ``LOCAL``, a base URL for ``HTTP`` and
    the bucket or container name for the object stores.
    """

    kind: StorageKind
    location: str
    prefix: str = ""

    def object_key(self, key: str) -> str:
        key = key.lstrip("/")
        return f"{self.prefix}/{key}" if self.prefix else key


def resolve_target(config: StorageConfig) -> StorageTarget:
    """Pick exactly one backend from ``config.url`` and ``config.kind``."""
    if not config.url:
        raise ConfigError("no storage backend configured (set STORAGE_URL or --storage-url)")

    url = config.url.strip()
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    # a Windows drive letter is not a scheme
    if len(scheme) == 1:
        scheme = ""

    if scheme not in _SCHEMES:
        raise ConfigError(f"unsupported storage URL scheme: {parts.scheme!r}")

    kind = config.kind or _SCHEMES[scheme]
    if scheme and config.kind is not None and _SCHEMES[scheme] is not config.kind:
        raise ConfigError(f"storage kind {config.kind.value!r} does not match URL {url!r}")

    if kind is StorageKind.LOCAL:
        path = parts.path if scheme == "file" else url
        if scheme == "file" and parts.netloc:
            path = f"{parts.netloc}{parts.path}"
        return StorageTarget(kind, path)

    if kind is StorageKind.HTTP:
        if not scheme:
            raise ConfigError(f"HTTP storage needs an http(s) URL, got {url!r}")
        return StorageTarget(kind, url.rstrip("/"))

    if scheme:
        bucket, prefix = parts.netloc, parts.path
    else:
        bucket, _, prefix = url.lstrip("/").partition("/")
    if not bucket:
        raise ConfigError(f"{kind.value} storage URL has no bucket: {url!r}")
    assert kind in _BUCKET_KINDS
    return StorageTarget(kind, bucket, prefix.strip("/"))
