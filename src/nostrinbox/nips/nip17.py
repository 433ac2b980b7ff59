"""NIP-17 private direct messages in NIP-59 gift wraps (kind 1059).

The outer wrap is signed by a throwaway key with a randomized
``created_at``; neither may be used for routing or ordering. Opening the
wrap yields a seal signer and a kind 14 rumor whose ``pubkey`` and
``created_at`` are the real sender and send time.

Every outgoing message is published twice: one wrap to the recipient and
one backup wrap to the sender, whose rumor names the recipient in a ``p``
tag.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nostrinbox.models.constants import EncryptionScheme, EventKind
from nostrinbox.models.message import NormalizedMessage

from .base import DecryptOutcome


if TYPE_CHECKING:
    from nostrinbox.models.event import Event
    from nostrinbox.utils.keys import KeyStore, WrappedPair


logger = logging.getLogger(__name__)


async def decrypt_wrapped(event: Event, key_store: KeyStore) -> DecryptOutcome:
    """Unwrap a gift wrap and recover direction and partner.

    A wrap that cannot be opened is treated as someone else's traffic.
    When the rumor author is the local identity the event is our own
    backup copy and the partner is the rumor's ``p`` tag; otherwise the
    partner is the rumor author.
    """
    try:
        unwrapped = await key_store.unwrap(event)
    except asyncio.CancelledError:
        raise
    except Exception:  # noqa: BLE001  # not addressed to us: the expected case
        return DecryptOutcome.not_applicable("gift wrap not addressed to local identity")

    rumor = unwrapped.rumor
    if rumor.event_kind is not EventKind.PRIVATE_DM:
        return DecryptOutcome.unsupported(f"rumor kind {rumor.kind} is not a private message")
    if unwrapped.sender != rumor.author:
        logger.debug("nip17_sender_mismatch id=%s", event.id)
        return DecryptOutcome.malformed("seal signer differs from rumor author")

    me = key_store.public_key()
    if rumor.author == me:
        peer = rumor.first_tag("p")
        if peer is None:
            logger.debug("nip17_backup_missing_p id=%s", event.id)
            return DecryptOutcome.malformed("sent rumor has no p tag")
        sent = True
    else:
        peer = rumor.author
        sent = False

    try:
        message = NormalizedMessage(
            id=event.id,
            peer=peer,
            content=rumor.content,
            timestamp=rumor.created_at,
            sent=sent,
            scheme=EncryptionScheme.WRAPPED,
            raw_event=event,
        )
    except (TypeError, ValueError) as e:
        return DecryptOutcome.malformed(str(e))
    return DecryptOutcome.decrypted(message)


async def build_wrapped_message(key_store: KeyStore, peer: str, content: str) -> WrappedPair:
    """Build the recipient wrap and the sender backup wrap for one message."""
    return await key_store.wrap_private_message(peer, content)
