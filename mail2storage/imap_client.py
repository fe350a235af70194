"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import base64
import imaplib
import ssl
import time
from dataclasses import dataclass

import structlog

from .config import ImapConfig
from .errors import ConfigError

logger = structlog.get_logger()


@dataclass
class FetchedEmail:
    """Raw email data fetched from IMAP."""

    uid: str
    raw_bytes: bytes


def encode_mailbox_name(name: str) -> str:
    """Encode *name* in IMAP modified UTF-7 (RFC 3501, section 5.1.3).

    Printable ASCII passes through, ``&`` becomes ``&-`` and every other
    run of characters is sent as ``&<base64 of UTF-16BE>-`` with ``,``
    in place of ``/`` and no padding.
    """
    out: list[str] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            raw = "".join(pending).encode("utf-16-be")
            encoded = base64.b64encode(raw).rstrip(b"=").replace(b"/", b",")
            out.append(f"&{encoded.decode('ascii')}-")
            pending.clear()

    for char in name:
        if 0x20 <= ord(char) <= 0x7E:
            flush()
            out.append("&-" if char == "&" else char)
        else:
            pending.append(char)
    flush()
    return "".join(out)


def quote_mailbox(name: str) -> str:
    """Encode and, when needed, quote a mailbox name for an IMAP command."""
    name = encode_mailbox_name(name)
    if name.startswith('"') and name.endswith('"') and len(name) > 1:
        return name
    if name and not any(c in name for c in ' "\\(){%*'):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def create_ssl_context(insecure: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class ImapClient:
    """Async-friendly IMAP client.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  Commands
    answered with anything but ``OK`` raise ``imaplib.IMAP4.error``.
    """

    def __init__(self, config: ImapConfig, *, insecure: bool = False) -> None:
        if not config.host:
            raise ConfigError("IMAP host is not configured (IMAP_HOST)")
        self._config = config
        self._insecure = insecure
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._selected: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect and login."""
        await asyncio.to_thread(self._connect_sync)
        logger.info("imap_connected", host=self._config.host, port=self._config.port)

    def _connect_sync(self) -> None:
        context = create_ssl_context(self._insecure)
        if self._config.use_ssl:
            self._conn = imaplib.IMAP4_SSL(
                self._config.host, self._config.port, ssl_context=context
            )
        else:
            self._conn = imaplib.IMAP4(self._config.host, self._config.port)
            if self._config.starttls:
                self._conn.starttls(ssl_context=context)
        password = self._config.password.get_secret_value() if self._config.password else ""
        self._conn.login(self._config.username or "", password)

    async def disconnect(self) -> None:
        """Close the selected mailbox and logout."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            self._selected = None
            logger.info("imap_disconnected")

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        if self._selected is not None:
            try:
                self._conn.close()
            except (imaplib.IMAP4.error, OSError) as exc:
                logger.debug("imap_close_failed", error=str(exc))
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            # a dead socket makes logout() re-raise from shutdown()
            logger.debug("imap_logout_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def select(self, mailbox: str) -> None:
        await asyncio.to_thread(self._select_sync, mailbox)

    def _select_sync(self, mailbox: str) -> None:
        conn = self._require()
        status, data = conn.select(quote_mailbox(mailbox))
        _check(status, data, f"SELECT {mailbox}")
        self._selected = mailbox

    async def search(self, criteria: str) -> list[str]:
        """Return the UIDs matching *criteria* in the selected mailbox."""
        return await asyncio.to_thread(self._search_sync, criteria)

    def _search_sync(self, criteria: str) -> list[str]:
        conn = self._require()
        status, data = conn.uid("SEARCH", None, criteria)
        _check(status, data, f"SEARCH {criteria}")
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    async def fetch(self, uid: str) -> FetchedEmail | None:
        """Fetch the full RFC 822 bytes of one message.

        ``BODY.PEEK[]`` leaves the ``\\Seen`` flag untouched.
        """
        return await asyncio.to_thread(self._fetch_sync, uid)

    def _fetch_sync(self, uid: str) -> FetchedEmail | None:
        conn = self._require()
        status, data = conn.uid("FETCH", uid, "(BODY.PEEK[])")
        if status != "OK" or not data:
            return None
        for item in data:
            if isinstance(item, tuple) and len(item) == 2:
                return FetchedEmail(uid=uid, raw_bytes=item[1])
        return None

    async def add_flags(self, uid: str, flags: list[str]) -> None:
        if flags:
            await asyncio.to_thread(self._store_sync, uid, "+FLAGS", flags)

    def _store_sync(self, uid: str, op: str, flags: list[str]) -> None:
        conn = self._require()
        status, data = conn.uid("STORE", uid, op, f"({' '.join(flags)})")
        _check(status, data, f"STORE {uid} {op}")

    async def expunge(self) -> None:
        await asyncio.to_thread(self._expunge_sync)

    def _expunge_sync(self) -> None:
        status, data = self._require().expunge()
        _check(status, data, "EXPUNGE")

    async def create_folder(self, folder: str) -> None:
        """Create and subscribe *folder*; an existing folder is not an error."""
        await asyncio.to_thread(self._create_sync, folder)

    def _create_sync(self, folder: str) -> None:
        conn = self._require()
        status, data = conn.create(quote_mailbox(folder))
        if status != "OK":
            logger.debug("imap_create_skipped", folder=folder, response=_decode(data))
            return
        conn.subscribe(quote_mailbox(folder))
        logger.info("imap_folder_created", folder=folder)

    async def append(self, folder: str, message: bytes, flags: list[str]) -> None:
        """Append *message* to *folder* with *flags* set."""
        await asyncio.to_thread(self._append_sync, folder, message, flags)

    def _append_sync(self, folder: str, message: bytes, flags: list[str]) -> None:
        conn = self._require()
        status, data = conn.append(
            quote_mailbox(folder),
            " ".join(flags) or None,
            imaplib.Time2Internaldate(time.time()),
            message,
        )
        _check(status, data, f"APPEND {folder}")

    def _require(self) -> imaplib.IMAP4:
        assert self._conn is not None, "Not connected"
        return self._conn


def _check(status: str, data: list, what: str) -> None:
    if status != "OK":
        raise imaplib.IMAP4.error(f"{what} failed: {status} {_decode(data)}")


def _decode(data: list | None) -> str:
    if not data:
        return ""
    return " ".join(
        item.decode(errors="replace") if isinstance(item, bytes) else str(item)
        for item in data
        if item is not None
    )
