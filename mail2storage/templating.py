"""Render storage keys and archive folder names with Jinja2."""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import jinja2

from .errors import TemplateError
from .models import Attachment, ParsedMessage, ResolvedUser, RunOutcome

_FILENAME_REPLACEMENTS = {
    "<": "_",
    ">": "_",
    ":": "_",
    '"': "_",
    "/": "__",
    "\\": "__",
    "|": "#",
    "?": "#",
    "*": "#",
}


def escape_filename(value: Any) -> str:
    """Return *value* as text that is safe to use as a file name on all
    major platforms."""
    out = []
    for char in str(value):
        if unicodedata.category(char) == "Cc":
            out.append("_")
        else:
            out.append(_FILENAME_REPLACEMENTS.get(char, char))
    return "".join(out)


def create_environment() -> jinja2.Environment:
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        autoescape=False,
        keep_trailing_newline=False,
    )
    env.filters["escape_filename"] = escape_filename
    return env


@dataclass(frozen=True)
class _MessageFields:
    user: str
    user_resolved: bool
    from_: str
    subject: str
    date: datetime | None
    message_id: str

    def _base_mapping(self) -> dict[str, Any]:
        return {
            "user": self.user,
            "user_resolved": self.user_resolved,
            "from": self.from_,
            "subject": self.subject,
            "date": self.date,
            "message_id": self.message_id,
        }


@dataclass(frozen=True)
class StoragePathContext(_MessageFields):
    """Fields available to the attachment storage-path template."""

    file_name: str = ""
    content_type: str = ""
    index: int = 0

    @classmethod
    def build(
        cls,
        message: ParsedMessage,
        user: ResolvedUser,
        attachment: Attachment,
    ) -> StoragePathContext:
        return cls(
            user=user.name,
            user_resolved=user.resolved,
            from_=message.from_address,
            subject=message.subject,
            date=message.date,
            message_id=message.message_id,
            file_name=attachment.filename,
            content_type=attachment.content_type,
            index=attachment.index,
        )

    def as_mapping(self) -> dict[str, Any]:
        mapping = self._base_mapping()
        mapping.update(
            file_name=self.file_name,
            content_type=self.content_type,
            index=self.index,
        )
        return mapping


@dataclass(frozen=True)
class ArchiveFolderContext(_MessageFields):
    """Fields available to the archive-folder template."""

    error: bool = False
    stored: tuple[str, ...] = field(default=())
    failed: int = 0
    attachments: int = 0

    @classmethod
    def build(cls, message: ParsedMessage, outcome: RunOutcome) -> ArchiveFolderContext:
        user = outcome.user
        return cls(
            user=user.name if user else "",
            user_resolved=bool(user and user.resolved),
            from_=message.from_address,
            subject=message.subject,
            date=message.date,
            message_id=message.message_id,
            error=outcome.error,
            stored=tuple(outcome.stored_keys),
            failed=len(outcome.failed_attachments),
            attachments=len(outcome.attachments),
        )

    def as_mapping(self) -> dict[str, Any]:
        mapping = self._base_mapping()
        mapping.update(
            error=self.error,
            success=not self.error,
            stored=list(self.stored),
            failed=self.failed,
            attachments=self.attachments,
        )
        return mapping


class TemplateRenderer:
    """Holds the two configured templates and renders them on demand.

    Templates are compiled on first use so a broken template only fails
    the operation that needs it.
    """

    def __init__(self, storage_template: str, archive_template: str) -> None:
        self._env = create_environment()
        self._sources = {"storage": storage_template, "archive": archive_template}
        self._compiled: dict[str, jinja2.Template] = {}

    def render_storage_path(self, context: StoragePathContext) -> str:
        key = self._render("storage", context.as_mapping()).strip()
        if not key:
            raise TemplateError("storage template rendered an empty path")
        return key

    def render_archive_folder(self, context: ArchiveFolderContext) -> str:
        return self._render("archive", context.as_mapping()).strip()

    def _render(self, name: str, mapping: dict[str, Any]) -> str:
        try:
            template = self._compiled.get(name)
            if template is None:
                template = self._env.from_string(self._sources[name])
                self._compiled[name] = template
            return template.render(mapping)
        except jinja2.TemplateError as exc:
            raise TemplateError(f"{name} template: {exc}") from exc
