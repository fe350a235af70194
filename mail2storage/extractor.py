"""Select the MIME parts of a message that should be stored."""

from __future__ import annotations

import mimetypes
from collections.abc import Iterable

from .config import DEFAULT_ACCEPTED_MIMETYPES
from .models import Attachment, MimePart, ParsedMessage


def extract_attachments(
    message: ParsedMessage,
    accepted_mimetypes: Iterable[str] = DEFAULT_ACCEPTED_MIMETYPES,
) -> list[Attachment]:
    """Collect qualifying parts in depth-first order.

    A part qualifies when its content type is accepted (case-insensitive)
    and it is not a multipart container.  Unnamed parts get a synthesized
    ``attachment-<n><ext>`` name that is unique within the message.
    """
    accepted = {m.strip().lower() for m in accepted_mimetypes}
    candidates: list[MimePart] = [
        part
        for part in message.root.walk()
        if not part.is_multipart and part.content_type in accepted
    ]

    taken = {part.filename for part in candidates if part.filename}
    counter = 0
    attachments: list[Attachment] = []

    for index, part in enumerate(candidates):
        filename = part.filename
        synthesized = False
        if not filename:
            while True:
                counter += 1
                filename = f"attachment-{counter}{_extension(part.content_type)}"
                if filename not in taken:
                    break
            taken.add(filename)
            synthesized = True

        attachments.append(
            Attachment(
                content_type=part.content_type,
                filename=filename,
                payload=part.payload,
                index=index,
                synthesized_name=synthesized,
                part=part,
            )
        )

    return attachments


def _extension(content_type: str) -> str:
    return mimetypes.guess_extension(content_type, strict=False) or ".bin"
