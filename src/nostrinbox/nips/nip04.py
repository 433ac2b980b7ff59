"""NIP-04 legacy encrypted direct messages (kind 4).

The envelope is public: ``pubkey`` is the sender, the first ``p`` tag is
the recipient and ``created_at`` is the authoritative send time. Only the
content is encrypted, with a key shared by exactly those two parties.
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
    from nostrinbox.utils.keys import KeyStore


logger = logging.getLogger(__name__)


async def decrypt_legacy(event: Event, key_store: KeyStore) -> DecryptOutcome:
    """Classify and decrypt a kind 4 event for the local identity.

    Direction follows the author: an event authored locally is a sent
    message to its ``p`` tag; an event whose ``p`` tag is the local
    identity is a received message from its author. Anything else is
    someone else's conversation.
    """
    me = key_store.public_key()
    recipient = event.first_tag("p")

    if event.pubkey == me:
        if recipient is None:
            return DecryptOutcome.malformed("sent legacy message has no p tag")
        sent, peer = True, recipient
    elif recipient == me:
        sent, peer = False, event.pubkey
    else:
        return DecryptOutcome.not_applicable("legacy message addressed to another pubkey")

    try:
        plaintext = await key_store.nip04_decrypt(peer, event.content)
    except asyncio.CancelledError:
        raise
    except Exception as e:  # noqa: BLE001  # crypto backends raise arbitrary types
        logger.debug("nip04_decrypt_failed id=%s error=%s", event.id, e)
        return DecryptOutcome.malformed(f"nip04 decryption failed: {e}")

    try:
        message = NormalizedMessage(
            id=event.id,
            peer=peer,
            content=plaintext,
            timestamp=event.created_at,
            sent=sent,
            scheme=EncryptionScheme.LEGACY,
            raw_event=event,
        )
    except (TypeError, ValueError) as e:
        return DecryptOutcome.malformed(str(e))
    return DecryptOutcome.decrypted(message)


async def build_legacy_message(key_store: KeyStore, peer: str, content: str) -> Event:
    """Encrypt *content* for *peer* and sign a kind 4 event."""
    ciphertext = await key_store.nip04_encrypt(peer, content)
    return await key_store.sign_event(EventKind.ENCRYPTED_DM, ciphertext, [["p", peer]])
