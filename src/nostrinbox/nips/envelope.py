"""Scheme-agnostic decryption of direct-message envelopes.

Routes each relay event to the decoder for its outer kind and reduces
both schemes to [NormalizedMessage][nostrinbox.models.message.NormalizedMessage].
Consumers never branch on the envelope scheme themselves.

See Also:
    [decrypt_legacy][nostrinbox.nips.nip04.decrypt_legacy]: Kind 4 decoder.
    [decrypt_wrapped][nostrinbox.nips.nip17.decrypt_wrapped]: Kind 1059 decoder.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nostrinbox.models.constants import EventKind

from .base import DecryptOutcome
from .nip04 import decrypt_legacy
from .nip17 import decrypt_wrapped


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from nostrinbox.models.event import Event
    from nostrinbox.models.message import NormalizedMessage
    from nostrinbox.utils.keys import KeyStore


logger = logging.getLogger(__name__)

_DECODERS: dict[EventKind, Callable[[Event, KeyStore], Awaitable[DecryptOutcome]]] = {
    EventKind.ENCRYPTED_DM: decrypt_legacy,
    EventKind.GIFT_WRAP: decrypt_wrapped,
}


class EnvelopeDecryptor:
    """Decrypts kind 4 and kind 1059 events for one local identity.

    Stateless apart from the key store; safe to share between the
    messenger's backlog pass and its live subscription.
    """

    def __init__(self, key_store: KeyStore) -> None:
        self._key_store = key_store

    @property
    def key_store(self) -> KeyStore:
        return self._key_store

    async def decrypt(self, event: Event) -> DecryptOutcome:
        """Classify and decode a single event. Never raises for bad input."""
        decoder = _DECODERS.get(event.event_kind)
        if decoder is None:
            outcome = DecryptOutcome.unsupported(f"kind {event.kind} is not a direct message")
        else:
            outcome = await decoder(event, self._key_store)
        if not outcome.ok:
            logger.debug(
                "decrypt_skipped id=%s status=%s reason=%s",
                event.id,
                outcome.status,
                outcome.reason,
            )
        return outcome

    async def decrypt_many(self, events: Iterable[Event]) -> list[NormalizedMessage]:
        """Decode a batch concurrently, keeping only decrypted messages.

        Output order follows input order.
        """
        outcomes = await asyncio.gather(*(self.decrypt(event) for event in events))
        return [o.message for o in outcomes if o.message is not None]
