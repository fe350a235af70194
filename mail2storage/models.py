"""Data model shared by the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum


@dataclass(frozen=True)
class MimePart:
    """One node of a parsed MIME tree."""

    content_type: str
    filename: str | None = None
    payload: bytes = b""
    children: tuple[MimePart, ...] = ()

    @property
    def is_multipart(self) -> bool:
        return self.content_type.startswith("multipart/")

    def walk(self):
        """Yield this part and all descendants, depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class ParsedMessage:
    """Immutable view of one parsed email."""

    message_id: str
    subject: str
    from_address: str
    to_addresses: tuple[str, ...]
    cc_addresses: tuple[str, ...]
    date: datetime | None
    raw_date: str
    root: MimePart
    raw_bytes: bytes = field(repr=False, default=b"")

    @property
    def recipients(self) -> tuple[str, ...]:
        """To addresses followed by Cc addresses, in header order."""
        return self.to_addresses + self.cc_addresses


class UserSource(str, Enum):
    """How the owning user of a message was determined."""

    OVERRIDE = "override"
    SUBADDRESS = "subaddress"
    SENDER_DOMAIN = "sender_domain"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolvedUser:
    name: str
    source: UserSource

    @property
    def resolved(self) -> bool:
        return self.source is not UserSource.FALLBACK


@dataclass(frozen=True)
class Attachment:
    """A MIME part selected for storage."""

    content_type: str
    filename: str
    payload: bytes = field(repr=False)
    index: int
    synthesized_name: bool = False
    part: MimePart | None = field(default=None, repr=False, compare=False)


@dataclass
class AttachmentOutcome:
    """Result of trying to store one attachment."""

    filename: str
    key: str | None = None
    stored: bool = False
    error: str | None = None


class ArchiveState(str, Enum):
    PENDING = "pending"
    FOLDER_RESOLVED = "folder_resolved"
    ARCHIVED = "archived"
    ARCHIVE_FAILED = "archive_failed"
    SKIPPED = "skipped"


@dataclass
class ArchiveResult:
    state: ArchiveState = ArchiveState.PENDING
    folder: str | None = None
    flags: tuple[str, ...] = ()
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is ArchiveState.ARCHIVE_FAILED


class ExitStatus(IntEnum):
    """Process exit codes.

    ``SUCCESS`` through ``NO_ATTACHMENTS`` describe a single pipeline run;
    ``CONFIG_ERROR`` and ``INPUT_ERROR`` are raised by the command line
    before any message is processed.  ``INTERNAL_ERROR`` reports an
    unexpected exception; an uncaught one would exit with 1 and read as
    ``STORAGE_FAILED``.
    """

    SUCCESS = 0
    STORAGE_FAILED = 1
    ARCHIVE_FAILED = 2
    PARSE_FAILED = 3
    NO_ATTACHMENTS = 4
    CONFIG_ERROR = 5
    INPUT_ERROR = 6
    INTERNAL_ERROR = 7

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def worst(cls, statuses) -> ExitStatus:
        """Return the most severe status, ``SUCCESS`` for an empty input."""
        return max(statuses, key=lambda s: s.severity, default=cls.SUCCESS)


_SEVERITY = {
    ExitStatus.SUCCESS: 0,
    ExitStatus.NO_ATTACHMENTS: 1,
    ExitStatus.STORAGE_FAILED: 2,
    ExitStatus.ARCHIVE_FAILED: 3,
    ExitStatus.PARSE_FAILED: 4,
    ExitStatus.INPUT_ERROR: 5,
    ExitStatus.CONFIG_ERROR: 6,
    ExitStatus.INTERNAL_ERROR: 7,
}


@dataclass
class RunOutcome:
    """Aggregate result of processing one message."""

    user: ResolvedUser | None = None
    attachments: list[AttachmentOutcome] = field(default_factory=list)
    archive: ArchiveResult | None = None
    parse_error: str | None = None
    empty_is_error: bool = False

    @property
    def failed_attachments(self) -> list[AttachmentOutcome]:
        return [a for a in self.attachments if not a.stored]

    @property
    def stored_keys(self) -> list[str]:
        return [a.key for a in self.attachments if a.stored and a.key]

    @property
    def no_attachments(self) -> bool:
        return self.parse_error is None and not self.attachments

    @property
    def error(self) -> bool:
        """Error state as seen by the archive-folder template."""
        if self.parse_error is not None or self.failed_attachments:
            return True
        return self.no_attachments and self.empty_is_error

    @property
    def status(self) -> ExitStatus:
        if self.parse_error is not None:
            return ExitStatus.PARSE_FAILED
        if self.archive is not None and self.archive.failed:
            return ExitStatus.ARCHIVE_FAILED
        if self.failed_attachments:
            return ExitStatus.STORAGE_FAILED
        if self.no_attachments and self.empty_is_error:
            return ExitStatus.NO_ATTACHMENTS
        return ExitStatus.SUCCESS

    @property
    def success(self) -> bool:
        return self.status is ExitStatus.SUCCESS
