"""IMAP archive store."""

from __future__ import annotations

import imaplib

import structlog

from ..errors import ArchiveError
from ..imap_client import ImapClient
from .base import MailStore

logger = structlog.get_logger()


class ImapStore(MailStore):
    """APPEND messages to folders on an IMAP server."""

    def __init__(self, client: ImapClient, *, create_folders: bool = True) -> None:
        self._client = client
        self._create_folders = create_folders

    async def start(self) -> None:
        try:
            await self._client.connect()
        except (imaplib.IMAP4.error, OSError, UnicodeError) as exc:
            raise ArchiveError(f"cannot connect to IMAP archive: {exc}") from exc

    async def stop(self) -> None:
        await self._client.disconnect()

    async def append(self, folder: str, message: bytes, flags: list[str]) -> None:
        try:
            if self._create_folders:
                await self._client.create_folder(folder)
            await self._client.append(folder, message, flags)
        except (imaplib.IMAP4.error, OSError, UnicodeError) as exc:
            raise ArchiveError(f"cannot append to IMAP folder {folder!r}: {exc}") from exc
        logger.info("imap_message_stored", folder=folder, flags=flags)
