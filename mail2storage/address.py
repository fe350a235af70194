"""Derive the owning user of a message from its envelope addresses."""

from __future__ import annotations

import structlog

from .models import ParsedMessage, ResolvedUser, UserSource

logger = structlog.get_logger()


def split_address(address: str) -> tuple[str, str] | None:
    """Split ``local@domain``; ``None`` for anything malformed."""
    local, sep, domain = address.strip().rpartition("@")
    if not sep or not local or not domain:
        return None
    return local, domain


def resolve_user(
    message: ParsedMessage,
    unknown_user: str,
    *,
    override: str | None = None,
) -> ResolvedUser:
    """Return the user a message belongs to.

    Tried in order:

    1. an explicit *override*;
    2. the sub-address of the first recipient (To, then Cc) shaped like
       ``anything+USER@domain``;
    3. the sender's local part, when the sender shares a domain with any
       recipient;
    4. *unknown_user*, flagged as a fallback.
    """
    if override:
        return ResolvedUser(override, UserSource.OVERRIDE)

    recipients = [p for p in map(split_address, message.recipients) if p is not None]

    for local, _ in recipients:
        _, plus, suffix = local.partition("+")
        if plus and suffix:
            return ResolvedUser(suffix, UserSource.SUBADDRESS)

    sender = split_address(message.from_address)
    if sender is not None:
        sender_local, sender_domain = sender
        recipient_domains = {domain.lower() for _, domain in recipients}
        name = sender_local.split("+", 1)[0]
        if name and sender_domain.lower() in recipient_domains:
            return ResolvedUser(name, UserSource.SENDER_DOMAIN)

    logger.warning(
        "user_resolution_fallback",
        sender=message.from_address,
        recipients=list(message.recipients),
        user=unknown_user,
    )
    return ResolvedUser(unknown_user, UserSource.FALLBACK)
