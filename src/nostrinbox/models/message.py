"""Decrypted direct messages and per-peer conversation snapshots.

[NormalizedMessage][nostrinbox.models.message.NormalizedMessage] is
derived from exactly one relay event by the
[EnvelopeDecryptor][nostrinbox.nips.envelope.EnvelopeDecryptor]; services
never construct it from scratch.
[Conversation][nostrinbox.models.message.Conversation] is the read-only
view handed out by the
[ConversationStore][nostrinbox.services.messages.store.ConversationStore].
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._validation import validate_hex_id, validate_instance, validate_timestamp
from .constants import EncryptionScheme
from .event import Event


@dataclass(frozen=True, slots=True)
class NormalizedMessage:
    """One plaintext direct message, independent of its envelope scheme.

    Attributes:
        id: Id of the originating relay event (the outer gift wrap for
            wrapped messages).
        peer: Conversation partner public key.
        content: Decrypted plaintext.
        timestamp: Authoritative send time: ``created_at`` for legacy
            messages, the rumor ``created_at`` for wrapped ones.
        sent: True if the local identity authored the message.
        scheme: Envelope scheme the message arrived in.
        raw_event: The originating relay event.
    """

    id: str
    peer: str
    content: str
    timestamp: int
    sent: bool
    scheme: EncryptionScheme
    raw_event: Event = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        validate_hex_id(self.id, "id")
        validate_hex_id(self.peer, "peer")
        validate_instance(self.content, str, "content")
        validate_timestamp(self.timestamp, "timestamp")
        validate_instance(self.sent, bool, "sent")
        object.__setattr__(self, "scheme", EncryptionScheme(self.scheme))
        validate_instance(self.raw_event, Event, "raw_event")

    @property
    def received(self) -> bool:
        return not self.sent

    @property
    def sort_key(self) -> tuple[int, str]:
        """Thread ordering key: timestamp, then id for determinism."""
        return (self.timestamp, self.id)


@dataclass(frozen=True, slots=True)
class Conversation:
    """Immutable snapshot of one per-peer thread.

    Attributes:
        peer: Conversation partner public key.
        messages: Messages ordered ascending by ``(timestamp, id)``,
            unique by id.
        unread_count: Received messages not yet cleared or acknowledged.
    """

    peer: str
    messages: tuple[NormalizedMessage, ...] = ()
    unread_count: int = 0

    def __post_init__(self) -> None:
        validate_hex_id(self.peer, "peer")
        object.__setattr__(self, "messages", tuple(self.messages))
        validate_timestamp(self.unread_count, "unread_count")

    @property
    def last_message(self) -> NormalizedMessage | None:
        """Newest message in the thread, or None for an empty conversation."""
        return self.messages[-1] if self.messages else None

    @property
    def last_activity(self) -> int:
        last = self.last_message
        return last.timestamp if last is not None else 0

    def __len__(self) -> int:
        return len(self.messages)
