"""MIME parser: raw RFC 822 bytes → immutable ParsedMessage tree."""

from __future__ import annotations

import email
import email.message
import email.policy
import email.utils
from datetime import datetime

from .errors import ParseError
from .models import MimePart, ParsedMessage


class MimeParser:
    """Stateless parser built on the stdlib ``email`` package."""

    def parse(self, raw_bytes: bytes) -> ParsedMessage:
        if not raw_bytes or not raw_bytes.strip():
            raise ParseError("empty message")

        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
            if not msg.keys():
                raise ParseError("message has no header section")
            root = self._build_part(msg)
            raw_date = _raw_header(msg, "Date")
            return ParsedMessage(
                message_id=_header(msg, "Message-ID"),
                subject=_header(msg, "Subject"),
                from_address=next(iter(self._parse_address_list(msg, "From")), ""),
                to_addresses=tuple(self._parse_address_list(msg, "To")),
                cc_addresses=tuple(self._parse_address_list(msg, "Cc")),
                date=_parse_date(raw_date),
                raw_date=raw_date,
                root=root,
                raw_bytes=raw_bytes,
            )
        except (ValueError, IndexError, AttributeError, LookupError) as exc:
            raise ParseError(f"cannot parse message: {exc}") from exc

    def _build_part(self, part: email.message.Message) -> MimePart:
        content_type = part.get_content_type().lower()
        filename = part.get_filename()

        if part.is_multipart():
            # multipart/* and message/rfc822 both carry a list of sub-messages
            children = tuple(self._build_part(p) for p in part.get_payload())
            return MimePart(content_type=content_type, filename=filename, children=children)

        payload = part.get_payload(decode=True)
        return MimePart(
            content_type=content_type,
            filename=filename,
            payload=payload if isinstance(payload, bytes) else b"",
        )

    def _parse_address_list(self, msg: email.message.Message, name: str) -> list[str]:
        values = [str(v) for v in msg.get_all(name, [])]
        if not values:
            return []
        return [addr for _, addr in email.utils.getaddresses(values) if addr]


def _header(msg: email.message.Message, name: str) -> str:
    value = msg.get(name)
    return str(value).strip() if value is not None else ""


def _raw_header(msg: email.message.Message, name: str) -> str:
    # the unparsed value; DateHeader rejects some dates real mailers send
    for key, value in msg.raw_items():
        if key.lower() == name.lower():
            return " ".join(str(value).split())
    return ""


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
