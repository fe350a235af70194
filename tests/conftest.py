"""Shared test fixtures for the mail2storage test suite."""

from __future__ import annotations

import os
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from mail2storage.config import (
    ArchiveConfig,
    ImapConfig,
    Mail2StorageConfig,
    RetryConfig,
    StorageConfig,
    StorageKind,
)
from mail2storage.models import ParsedMessage
from mail2storage.parser import MimeParser
from mail2storage.storage.base import StorageBackend
from mail2storage.storage.target import StorageTarget

PDF_BYTES = b"%PDF-1.4 fake pdf content"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings from the developer's environment out of the tests."""
    prefixes = (
        "MAIL2STORAGE_",
        "STORAGE_",
        "HTTP_",
        "S3_",
        "AZURE_",
        "GCS_",
        "RETRY_",
        "IMAP_",
        "SOURCE_",
        "ARCHIVE_",
    )
    for name in list(os.environ):
        if name.startswith(prefixes):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(
        initial_interval_seconds=0.001,
        multiplier=1.5,
        max_interval_seconds=0.01,
        max_elapsed_seconds=5.0,
        max_attempts=3,
    )


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def config(tmp_path, fast_retry: RetryConfig) -> Mail2StorageConfig:
    return Mail2StorageConfig(
        storage=StorageConfig(url=str(tmp_path / "store")),
        archive=ArchiveConfig(maildir_path=str(tmp_path / "Maildir")),
        retry=fast_retry,
    )


# ------------------------------------------------------------------
# Fake backends
# ------------------------------------------------------------------


class MemoryStorage(StorageBackend):
    """Records puts in a dict; scripted failures per key."""

    def __init__(self, failures: dict[str, list[Exception]] | None = None) -> None:
        super().__init__(StorageTarget(StorageKind.LOCAL, "memory"))
        self.objects: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.failures = failures or {}
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def put(self, key: str, data: bytes) -> None:
        self.calls.append(key)
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)
        self.objects[key] = data


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    cc: str | None = None,
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    if cc:
        msg["Cc"] = cc
    return msg.as_bytes()


def _build_multipart_email(
    *,
    subject: str = "Invoice",
    from_addr: str = "billing@vendor.com",
    to_addr: str = "invoices+alice@example.com",
    cc: str | None = None,
    body_text: str = "Please find the invoice attached.",
    attachments: list[tuple[str | None, str, bytes]] | None = None,
    message_id: str = "<multi-001@example.com>",
) -> bytes:
    """Build a multipart email with a text body and optional attachments.

    An attachment with filename ``None`` gets no ``filename`` parameter.
    """
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    if cc:
        msg["Cc"] = cc

    msg.attach(MIMEText(body_text, "plain"))

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        if filename is None:
            part.add_header("Content-Disposition", "attachment")
        else:
            part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


def _parse(raw: bytes) -> ParsedMessage:
    return MimeParser().parse(raw)


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def invoice_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[("invoice.pdf", "application/pdf", PDF_BYTES)],
    )
