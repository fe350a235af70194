"""Pipeline — parse, resolve, extract, store, archive one message."""

from __future__ import annotations

import posixpath
import sys
from typing import BinaryIO

import structlog

from .address import resolve_user
from .archive import MailArchiver, MailStore, annotate_message, create_mail_store
from .config import EmptyPolicy, Mail2StorageConfig
from .errors import ArchiveError, ParseError, StorageError, TemplateError
from .extractor import extract_attachments
from .models import (
    ArchiveResult,
    ArchiveState,
    Attachment,
    AttachmentOutcome,
    ParsedMessage,
    ResolvedUser,
    RunOutcome,
)
from .parser import MimeParser
from .retry import put_with_retry
from .storage import StorageBackend, create_storage
from .templating import ArchiveFolderContext, StoragePathContext, TemplateRenderer

logger = structlog.get_logger()


def unique_key(key: str, used: set[str]) -> str:
    """Return *key*, or ``stem-N.ext`` if an earlier attachment took it."""
    candidate = key
    stem, ext = posixpath.splitext(key)
    n = 1
    while candidate in used:
        n += 1
        candidate = f"{stem}-{n}{ext}"
    used.add(candidate)
    return candidate


class Pipeline:
    """Processes messages against one storage backend and one archive.

    Per-attachment failures are collected, not raised; archival is always
    the last step and sees the aggregate outcome.  Call :meth:`start`
    before and :meth:`stop` after processing.
    """

    def __init__(
        self,
        config: Mail2StorageConfig,
        storage: StorageBackend,
        mail_store: MailStore | None = None,
        *,
        stdout: BinaryIO | None = None,
    ) -> None:
        self._config = config
        self._storage = storage
        self._mail_store = mail_store
        self._parser = MimeParser()
        self._renderer = TemplateRenderer(
            config.output_template,
            config.archive.folder_template,
        )
        self._archiver = (
            MailArchiver(
                mail_store,
                self._renderer,
                success_flags=config.archive.success_flags,
                error_flags=config.archive.error_flags,
            )
            if mail_store is not None
            else None
        )
        self._stdout = stdout
        self._archive_unavailable: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self._storage.start()
        if self._mail_store is not None:
            try:
                await self._mail_store.start()
            except ArchiveError as exc:
                # attachments are still stored; every archive attempt reports this
                self._archive_unavailable = str(exc)
                logger.error("archive_store_unavailable", error=str(exc))

    async def stop(self) -> None:
        try:
            if self._mail_store is not None and self._archive_unavailable is None:
                await self._mail_store.stop()
        finally:
            await self._storage.stop()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, raw_bytes: bytes) -> RunOutcome:
        outcome = RunOutcome(empty_is_error=self._config.empty_policy is EmptyPolicy.ERROR)

        try:
            message = self._parser.parse(raw_bytes)
        except ParseError as exc:
            outcome.parse_error = str(exc)
            logger.error("message_parse_failed", error=str(exc), size=len(raw_bytes))
            self._echo(raw_bytes)
            return outcome

        log = logger.bind(message_id=message.message_id)
        outcome.user = resolve_user(
            message,
            self._config.unknown_user,
            override=self._config.user,
        )
        attachments = extract_attachments(message, self._config.accepted_mimetypes)
        log.info(
            "attachments_found",
            user=outcome.user.name,
            user_source=outcome.user.source.value,
            count=len(attachments),
        )

        used_keys: set[str] = set()
        for attachment in attachments:
            result = await self._store_attachment(message, outcome.user, attachment, used_keys)
            outcome.attachments.append(result)

        if outcome.no_attachments:
            log.info("no_candidate_attachments", policy=self._config.empty_policy.value)

        # archival starts only after every store attempt finished
        processed = raw_bytes
        if self._archive_unavailable is not None:
            outcome.archive = ArchiveResult(
                state=ArchiveState.ARCHIVE_FAILED,
                error=self._archive_unavailable,
            )
        elif self._archiver is not None:
            if self._config.archive.annotate:
                processed = annotate_message(raw_bytes, outcome)
            context = ArchiveFolderContext.build(message, outcome)
            outcome.archive = await self._archiver.archive(processed, context)
        else:
            outcome.archive = ArchiveResult(state=ArchiveState.SKIPPED)

        self._echo(processed)

        log.info(
            "message_processed",
            status=outcome.status.name,
            stored=len(outcome.stored_keys),
            failed=len(outcome.failed_attachments),
            archive_state=outcome.archive.state.value,
            archive_folder=outcome.archive.folder,
        )
        return outcome

    async def _store_attachment(
        self,
        message: ParsedMessage,
        user: ResolvedUser,
        attachment: Attachment,
        used_keys: set[str],
    ) -> AttachmentOutcome:
        result = AttachmentOutcome(filename=attachment.filename)
        try:
            key = self._renderer.render_storage_path(
                StoragePathContext.build(message, user, attachment)
            )
            result.key = unique_key(key, used_keys)
            await put_with_retry(
                self._storage,
                result.key,
                attachment.payload,
                self._config.retry,
            )
        except TemplateError as exc:
            result.error = str(exc)
            logger.error(
                "storage_path_template_failed",
                filename=attachment.filename,
                error=str(exc),
            )
        except StorageError as exc:
            result.error = str(exc)
            logger.error(
                "attachment_store_failed",
                filename=attachment.filename,
                location=self._storage.describe(result.key or ""),
                error=str(exc),
            )
        else:
            result.stored = True
            logger.info(
                "attachment_stored",
                filename=attachment.filename,
                location=self._storage.describe(result.key),
                size=len(attachment.payload),
            )
        return result

    def _echo(self, message: bytes) -> None:
        if not self._config.echo_stdout:
            return
        stream = self._stdout if self._stdout is not None else sys.stdout.buffer
        stream.write(message)
        stream.flush()


def build_pipeline(config: Mail2StorageConfig, *, stdout: BinaryIO | None = None) -> Pipeline:
    """Wire the configured storage backend and archive store into a Pipeline."""
    return Pipeline(
        config,
        create_storage(config),
        create_mail_store(config),
        stdout=stdout,
    )
