"""Where raw messages come from: a file, stdin, or an IMAP mailbox."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator
from pathlib import Path

import structlog

from .config import SourceConfig
from .imap_client import FetchedEmail, ImapClient
from .models import ArchiveState, RunOutcome

logger = structlog.get_logger()


def read_input(path: str) -> bytes:
    """Read a message from *path*, ``-`` meaning standard input."""
    if path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


class ImapSource:
    """Yield messages matching the configured search from one mailbox.

    After each message has been processed, :meth:`mark_processed` adds
    the ``processed_flags`` and, with ``delete_processed``, deletes
    messages that were archived successfully.  Deleted messages are
    expunged by :meth:`close`.
    """

    def __init__(
        self,
        client: ImapClient,
        config: SourceConfig,
        *,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._shutdown_event = shutdown_event
        self._needs_expunge = False

    async def open(self) -> None:
        await self._client.connect()
        await self._client.select(self._config.mailbox)

    async def close(self) -> None:
        try:
            if self._needs_expunge:
                await self._client.expunge()
                self._needs_expunge = False
        finally:
            await self._client.disconnect()

    async def messages(self) -> AsyncIterator[FetchedEmail]:
        uids = await self._client.search(self._config.search)
        logger.info(
            "imap_source_search",
            mailbox=self._config.mailbox,
            criteria=self._config.search,
            count=len(uids),
        )
        for uid in uids:
            if self._shutdown_event is not None and self._shutdown_event.is_set():
                logger.info("imap_source_interrupted", remaining_from=uid)
                break
            fetched = await self._client.fetch(uid)
            if fetched is None:
                logger.warning("imap_fetch_empty", uid=uid)
                continue
            yield fetched

    async def mark_processed(self, fetched: FetchedEmail, outcome: RunOutcome) -> None:
        flags = list(self._config.processed_flags)
        archived = outcome.archive is not None and outcome.archive.state is ArchiveState.ARCHIVED
        if self._config.delete_processed and archived:
            flags.append("\\Deleted")
            self._needs_expunge = True
        await self._client.add_flags(fetched.uid, flags)
        logger.debug("imap_source_marked", uid=fetched.uid, flags=flags)
