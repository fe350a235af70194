"""MailArchiver — files the processed message once all attachments ran."""

from __future__ import annotations

import structlog

from ..errors import ArchiveError, TemplateError
from ..models import ArchiveResult, ArchiveState, RunOutcome
from ..templating import ArchiveFolderContext, TemplateRenderer
from .base import MailStore

logger = structlog.get_logger()


def annotate_message(message: bytes, outcome: RunOutcome) -> bytes:
    """Prepend status headers to *message*."""
    user = outcome.user.name if outcome.user else ""
    status = "error" if outcome.error else "ok"
    headers = (
        f"X-Mail2Storage-User: {user}\r\n"
        f"X-Mail2Storage-Status: {status}\r\n"
        f"X-Mail2Storage-Stored: {len(outcome.stored_keys)}\r\n"
    )
    return headers.encode("utf-8") + message


class MailArchiver:
    """Drive one message through
    ``PENDING → FOLDER_RESOLVED → ARCHIVED | ARCHIVE_FAILED``.

    The folder comes from the archive template rendered with the run's
    error state; the flags are ``success_flags`` or ``error_flags``
    accordingly.  Failures are reported in the returned
    :class:`ArchiveResult`, never raised, and stored attachments are left
    in place.
    """

    def __init__(
        self,
        store: MailStore,
        renderer: TemplateRenderer,
        *,
        success_flags: list[str],
        error_flags: list[str],
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._success_flags = list(success_flags)
        self._error_flags = list(error_flags)

    async def archive(self, message: bytes, context: ArchiveFolderContext) -> ArchiveResult:
        result = ArchiveResult(state=ArchiveState.PENDING)
        flags = self._error_flags if context.error else self._success_flags
        result.flags = tuple(flags)

        try:
            result.folder = self._renderer.render_archive_folder(context)
        except TemplateError as exc:
            result.state = ArchiveState.ARCHIVE_FAILED
            result.error = str(exc)
            logger.error("archive_folder_template_failed", error=str(exc))
            return result
        result.state = ArchiveState.FOLDER_RESOLVED

        try:
            await self._store.append(result.folder, message, flags)
        except ArchiveError as exc:
            result.state = ArchiveState.ARCHIVE_FAILED
            result.error = str(exc)
            logger.error("archive_failed", folder=result.folder, error=str(exc))
            return result

        result.state = ArchiveState.ARCHIVED
        logger.info("message_archived", folder=result.folder, flags=list(flags))
        return result
