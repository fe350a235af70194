"""Tests for mail2storage.imap_client."""

from __future__ import annotations

import imaplib
from unittest.mock import ANY, MagicMock, patch

import pytest

from mail2storage.config import ImapConfig
from mail2storage.errors import ConfigError
from mail2storage.imap_client import (
    FetchedEmail,
    ImapClient,
    encode_mailbox_name,
    quote_mailbox,
)


@pytest.fixture
def client(imap_config: ImapConfig) -> ImapClient:
    return ImapClient(imap_config)


def _make_mock_imap(
    *,
    search_uids: list[bytes] | None = None,
    fetch_data: dict[bytes, bytes] | None = None,
) -> MagicMock:
    """Create a mock imaplib.IMAP4_SSL with programmed responses."""
    mock = MagicMock()
    mock.login.return_value = ("OK", [b"Logged in"])
    mock.select.return_value = ("OK", [b"1"])
    mock.close.return_value = ("OK", [b"Closed"])
    mock.logout.return_value = ("BYE", [b"Bye"])
    mock.noop.return_value = ("OK", [b""])
    mock.expunge.return_value = ("OK", [None])
    mock.create.return_value = ("OK", [b"CREATE completed"])
    mock.subscribe.return_value = ("OK", [b"SUBSCRIBE completed"])
    mock.append.return_value = ("OK", [b"APPEND completed"])

    uid_data = b" ".join(search_uids) if search_uids else b""
    mock.uid.side_effect = _make_uid_handler(uid_data, fetch_data or {})
    return mock


def _make_uid_handler(search_data: bytes, fetch_data: dict[bytes, bytes]):
    """Build a side_effect function for mock.uid() that handles SEARCH and FETCH."""

    def handler(command: str, *args):
        if command == "SEARCH":
            return ("OK", [search_data])
        elif command == "FETCH":
            uid = args[0].encode() if isinstance(args[0], str) else args[0]
            raw = fetch_data.get(uid, b"")
            if raw:
                return ("OK", [(b"1 (UID %s BODY[] {%d})" % (uid, len(raw)), raw), b")"])
            return ("OK", [None])
        return ("OK", [b""])

    return handler


async def _connected(client: ImapClient, mock_conn: MagicMock) -> None:
    with patch("mail2storage.imap_client.imaplib.IMAP4_SSL", return_value=mock_conn):
        await client.connect()


class TestQuoteMailbox:
    def test_simple_name_unquoted(self):
        assert quote_mailbox("INBOX") == "INBOX"

    def test_dotted_name_unquoted(self):
        assert quote_mailbox("alice.done") == "alice.done"

    def test_space_is_quoted(self):
        assert quote_mailbox("Sent Items") == '"Sent Items"'

    def test_escapes_quotes_and_backslashes(self):
        assert quote_mailbox('a"b\\c') == '"a\\"b\\\\c"'

    def test_already_quoted(self):
        assert quote_mailbox('"Sent Items"') == '"Sent Items"'

    def test_non_ascii_is_modified_utf7(self):
        assert quote_mailbox("m\u00fcller.done") == "m&APw-ller.done"

    def test_non_ascii_with_space_is_quoted(self):
        assert quote_mailbox("M\u00fcller Rechnungen") == '"M&APw-ller Rechnungen"'


class TestEncodeMailboxName:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("INBOX", "INBOX"),
            ("Entw\u00fcrfe", "Entw&APw-rfe"),
            ("Tom & Jerry", "Tom &- Jerry"),
            ("\u65e5\u672c\u8a9e", "&ZeVnLIqe-"),
            ("\u00e4\u00f6\u00fc", "&AOQA9gD8-"),
        ],
    )
    def test_encode(self, name: str, expected: str):
        assert encode_mailbox_name(name) == expected

    def test_result_is_ascii(self):
        encode_mailbox_name("r\u00e9sum\u00e9s \u2013 2025").encode("ascii")


class TestImapClientConnect:
    def test_host_required(self):
        with pytest.raises(ConfigError, match="IMAP_HOST"):
            ImapClient(ImapConfig())

    @pytest.mark.asyncio
    async def test_connect_ssl(self, client: ImapClient):
        with patch("mail2storage.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            mock_conn = _make_mock_imap()
            MockSSL.return_value = mock_conn
            await client.connect()
            MockSSL.assert_called_once_with("imap.test.com", 993, ssl_context=ANY)
            mock_conn.login.assert_called_once_with("testuser", "testpass")

    @pytest.mark.asyncio
    async def test_connect_starttls(self):
        config = ImapConfig(
            host="imap.test.com",
            port=143,
            use_ssl=False,
            starttls=True,
            username="u",
            password="p",
        )
        client = ImapClient(config)
        with patch("mail2storage.imap_client.imaplib.IMAP4") as MockIMAP:
            mock_conn = _make_mock_imap()
            MockIMAP.return_value = mock_conn
            await client.connect()
            MockIMAP.assert_called_once_with("imap.test.com", 143)
            mock_conn.starttls.assert_called_once_with(ssl_context=ANY)

    @pytest.mark.asyncio
    async def test_insecure_disables_verification(self, imap_config: ImapConfig):
        client = ImapClient(imap_config, insecure=True)
        with patch("mail2storage.imap_client.imaplib.IMAP4_SSL") as MockSSL:
            MockSSL.return_value = _make_mock_imap()
            await client.connect()
            context = MockSSL.call_args.kwargs["ssl_context"]
            assert context.check_hostname is False

    @pytest.mark.asyncio
    async def test_disconnect(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.select("INBOX")
        await client.disconnect()
        mock_conn.close.assert_called_once()
        mock_conn.logout.assert_called_once()
        assert client._conn is None

    @pytest.mark.asyncio
    async def test_disconnect_survives_dead_socket(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        mock_conn.close.side_effect = OSError("broken pipe")
        mock_conn.logout.side_effect = OSError("broken pipe")
        await _connected(client, mock_conn)
        await client.select("INBOX")
        await client.disconnect()
        assert client._conn is None


class TestImapClientCommands:
    @pytest.mark.asyncio
    async def test_select_failure_raises(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        mock_conn.select.return_value = ("NO", [b"no such mailbox"])
        await _connected(client, mock_conn)
        with pytest.raises(imaplib.IMAP4.error, match="no such mailbox"):
            await client.select("Missing")

    @pytest.mark.asyncio
    async def test_search_and_fetch(self, client: ImapClient, plain_eml_bytes: bytes):
        mock_conn = _make_mock_imap(
            search_uids=[b"7", b"9"],
            fetch_data={b"7": plain_eml_bytes},
        )
        await _connected(client, mock_conn)

        assert await client.search("UNSEEN") == ["7", "9"]
        mock_conn.uid.assert_any_call("SEARCH", None, "UNSEEN")

        fetched = await client.fetch("7")
        assert fetched == FetchedEmail(uid="7", raw_bytes=plain_eml_bytes)
        mock_conn.uid.assert_any_call("FETCH", "7", "(BODY.PEEK[])")

        assert await client.fetch("9") is None

    @pytest.mark.asyncio
    async def test_search_empty(self, client: ImapClient):
        await _connected(client, _make_mock_imap())
        assert await client.search("ALL") == []

    @pytest.mark.asyncio
    async def test_add_flags(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.add_flags("7", ["\\Seen", "\\Deleted"])
        mock_conn.uid.assert_called_with("STORE", "7", "+FLAGS", "(\\Seen \\Deleted)")

    @pytest.mark.asyncio
    async def test_add_no_flags_is_noop(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.add_flags("7", [])
        mock_conn.uid.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_folder_subscribes(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.create_folder("alice.done")
        mock_conn.create.assert_called_once_with("alice.done")
        mock_conn.subscribe.assert_called_once_with("alice.done")

    @pytest.mark.asyncio
    async def test_create_existing_folder_is_not_an_error(self, client: ImapClient):
        mock_conn = _make_mock_imap()
        mock_conn.create.return_value = ("NO", [b"[ALREADYEXISTS] Mailbox exists"])
        await _connected(client, mock_conn)
        await client.create_folder("alice.done")
        mock_conn.subscribe.assert_not_called()

    @pytest.mark.asyncio
    async def test_append(self, client: ImapClient, plain_eml_bytes: bytes):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.append("Sent Items", plain_eml_bytes, ["\\Seen"])
        mock_conn.append.assert_called_once_with(
            '"Sent Items"', "\\Seen", ANY, plain_eml_bytes
        )

    @pytest.mark.asyncio
    async def test_append_without_flags(self, client: ImapClient, plain_eml_bytes: bytes):
        mock_conn = _make_mock_imap()
        await _connected(client, mock_conn)
        await client.append("alice.new", plain_eml_bytes, [])
        mock_conn.append.assert_called_once_with("alice.new", None, ANY, plain_eml_bytes)

    @pytest.mark.asyncio
    async def test_append_rejected(self, client: ImapClient, plain_eml_bytes: bytes):
        mock_conn = _make_mock_imap()
        mock_conn.append.return_value = ("NO", [b"over quota"])
        await _connected(client, mock_conn)
        with pytest.raises(imaplib.IMAP4.error, match="over quota"):
            await client.append("alice.done", plain_eml_bytes, [])
