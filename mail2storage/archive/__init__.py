"""Archive destinations for processed messages."""

from __future__ import annotations

from ..config import ArchiveKind, Mail2StorageConfig
from ..errors import ConfigError
from ..imap_client import ImapClient
from .archiver import MailArchiver, annotate_message
from .base import MailStore
from .imap import ImapStore
from .maildir import MaildirStore

__all__ = [
    "ImapStore",
    "MailArchiver",
    "MailStore",
    "MaildirStore",
    "annotate_message",
    "archive_kind",
    "create_mail_store",
]


def archive_kind(config: Mail2StorageConfig) -> ArchiveKind:
    """Explicit ``archive.kind``, else maildir when a path is set, else none."""
    if config.archive.kind is not None:
        return config.archive.kind
    if config.archive.maildir_path:
        return ArchiveKind.MAILDIR
    return ArchiveKind.NONE


def create_mail_store(config: Mail2StorageConfig) -> MailStore | None:
    """Instantiate the configured archive store, ``None`` when archiving is off."""
    kind = archive_kind(config)
    if kind is ArchiveKind.MAILDIR:
        if not config.archive.maildir_path:
            raise ConfigError("maildir archive needs ARCHIVE_MAILDIR_PATH")
        return MaildirStore(config.archive.maildir_path)
    if kind is ArchiveKind.IMAP:
        client = ImapClient(config.imap, insecure=config.insecure)
        return ImapStore(client, create_folders=config.archive.create_folders)
    return None
