"""MailStore — the ABC for archive destinations."""

from __future__ import annotations

import abc


class MailStore(abc.ABC):
    """A mailbox tree the processed message can be appended to."""

    async def start(self) -> None:
        """Open connections.  Default is a no-op."""

    async def stop(self) -> None:
        """Release connections.  Default is a no-op."""

    @abc.abstractmethod
    async def append(self, folder: str, message: bytes, flags: list[str]) -> None:
        """Store *message* in *folder* with *flags*.

        Raises :class:`~mail2storage.errors.ArchiveError` on failure.
        """
        ...
