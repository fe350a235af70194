"""Maildir++ archive store backed by stdlib ``mailbox``."""

from __future__ import annotations

import asyncio
import mailbox
from pathlib import Path

import structlog

from ..errors import ArchiveError
from .base import MailStore

logger = structlog.get_logger()

# IMAP system flags / keywords -> Maildir info letters
MAILDIR_FLAGS = {
    "\\seen": "S",
    "seen": "S",
    "\\answered": "R",
    "answered": "R",
    "replied": "R",
    "\\flagged": "F",
    "flagged": "F",
    "\\deleted": "T",
    "deleted": "T",
    "trashed": "T",
    "\\draft": "D",
    "draft": "D",
    "$forwarded": "P",
    "passed": "P",
}


def maildir_flags(flags: list[str]) -> str:
    """Translate flag names to the sorted Maildir letter string.

    Single Maildir letters (``"S"``) are accepted as-is; anything unknown
    is logged and dropped.
    """
    letters = set()
    for flag in flags:
        if len(flag) == 1 and flag in "DFPRST":
            letters.add(flag)
            continue
        letter = MAILDIR_FLAGS.get(flag.lower())
        if letter is None:
            logger.warning("maildir_flag_unsupported", flag=flag)
            continue
        letters.add(letter)
    return "".join(sorted(letters))


class MaildirStore(MailStore):
    """Append messages to Maildir++ folders below *root*.

    ``finance.done`` is stored in ``<root>/.finance.done``; an empty folder
    name or ``INBOX`` means the root Maildir itself.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()

    async def append(self, folder: str, message: bytes, flags: list[str]) -> None:
        try:
            key = await asyncio.to_thread(self._append_sync, folder, message, flags)
        except (OSError, mailbox.Error) as exc:
            raise ArchiveError(f"cannot write to maildir folder {folder!r}: {exc}") from exc
        logger.info("maildir_message_stored", folder=folder or "INBOX", key=key)

    def _append_sync(self, folder: str, message: bytes, flags: list[str]) -> str:
        box = self._folder(folder)
        msg = mailbox.MaildirMessage(message)
        letters = maildir_flags(flags)
        if letters:
            msg.set_subdir("cur")
            msg.set_flags(letters)
        return box.add(msg)

    def _folder(self, folder: str) -> mailbox.Maildir:
        root = mailbox.Maildir(self._root, factory=None, create=True)
        name = folder.strip()
        if not name or name.upper() == "INBOX":
            return root
        if "/" in name or "\\" in name or name.startswith(".") or ".." in name:
            raise ArchiveError(f"invalid maildir folder name: {folder!r}")
        return root.add_folder(name)
