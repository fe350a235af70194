"""Exception hierarchy for the mail2storage pipeline."""

from __future__ import annotations


class Mail2StorageError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(Mail2StorageError):
    """Configuration is incomplete or names an unsupported backend."""


class ParseError(Mail2StorageError):
    """Input bytes are not a usable RFC 5322 message."""


class TemplateError(Mail2StorageError):
    """A template failed to compile or referenced an undefined field."""


class StorageError(Mail2StorageError):
    """Writing an object to the storage backend failed."""

    transient: bool = False


class TransientStorageError(StorageError):
    """Timeouts, resets and 5xx answers; worth retrying."""

    transient = True


class PermanentStorageError(StorageError):
    """Authentication, 4xx and invalid-path failures; never retried."""


class ArchiveError(Mail2StorageError):
    """The message could not be appended to the mail store."""


def classify_http_status(status: int, message: str) -> StorageError:
    """Map an HTTP status code from any backend to a storage error."""
    if status >= 500 or status in (408, 429):
        return TransientStorageError(message)
    return PermanentStorageError(message)
