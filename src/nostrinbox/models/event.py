"""
Immutable Nostr event models.

[Event][nostrinbox.models.event.Event] is the signed, content-addressed
record that relays replicate. Two events with the same ``id`` are the same
event regardless of which relay delivered them, so equality and hashing
use ``id`` only.

[Rumor][nostrinbox.models.event.Rumor] is the unsigned inner event
recovered from a gift wrap, and
[Unwrapped][nostrinbox.models.event.Unwrapped] pairs it with the public key
that signed the seal around it.

Conversion to and from ``nostr_sdk`` objects goes through the NIP-01 JSON
form, so the SDK remains the single authority on wire format.

See Also:
    [nostrinbox.utils.protocol][]: Produces events from relay responses.
    [nostrinbox.nips.envelope][]: Consumes events and rumors for decryption.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nostr_sdk import Event as NostrEvent

from ._validation import (
    normalize_tags,
    validate_hex_id,
    validate_instance,
    validate_str_no_null,
    validate_timestamp,
)
from .constants import EVENT_KIND_MAX, EventKind


if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from nostr_sdk import UnsignedEvent


Tags = tuple[tuple[str, ...], ...]


def _tag_values(tags: Iterable[tuple[str, ...]], name: str) -> list[str]:
    return [tag[1] for tag in tags if len(tag) >= 2 and tag[0] == name]  # noqa: PLR2004


def _validate_kind(kind: Any) -> None:
    validate_timestamp(kind, "kind")
    if kind > EVENT_KIND_MAX:
        raise ValueError(f"kind {kind} out of valid range (0-{EVENT_KIND_MAX})")


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable signed Nostr event.

    Validation is performed eagerly at construction time: ``id`` and
    ``pubkey`` must be 64-character lowercase hex, ``created_at`` a
    non-negative integer, ``kind`` within ``0..65535``, and no string
    may contain null bytes. Tags are normalized to a tuple of tuples.

    Attributes:
        id: Event id (SHA-256 of the serialized event, hex).
        pubkey: Author public key (hex).
        created_at: Unix timestamp claimed by the author.
        kind: Integer event kind. See
            [EventKind][nostrinbox.models.constants.EventKind].
        tags: Ordered tag lists.
        content: Raw content string (ciphertext for encrypted kinds).
        sig: Schnorr signature (hex). Not verified by this model.

    Examples:
        ```python
        event = Event.from_dict(payload)
        event.event_kind          # EventKind.ENCRYPTED_DM
        event.first_tag("p")      # recipient pubkey or None
        ```
    """

    id: str
    pubkey: str = field(compare=False)
    created_at: int = field(compare=False)
    kind: int = field(compare=False)
    tags: Tags = field(default=(), compare=False)
    content: str = field(default="", compare=False)
    sig: str = field(default="", compare=False, repr=False)

    def __post_init__(self) -> None:
        """Validate field types and normalize tags."""
        validate_hex_id(self.id, "id")
        validate_hex_id(self.pubkey, "pubkey")
        validate_timestamp(self.created_at, "created_at")
        _validate_kind(self.kind)
        validate_str_no_null(self.content, "content")
        validate_instance(self.sig, str, "sig")
        object.__setattr__(self, "tags", normalize_tags(self.tags, "tags"))

    @property
    def event_kind(self) -> EventKind:
        """Known kind variant, ``EventKind.UNKNOWN`` for anything else."""
        return EventKind.parse(self.kind)

    def tag_values(self, name: str) -> list[str]:
        """Return the first value of every tag named *name*, in order."""
        return _tag_values(self.tags, name)

    def first_tag(self, name: str) -> str | None:
        """Return the value of the first tag named *name*, or None."""
        values = self.tag_values(name)
        return values[0] if values else None

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        """Serialize to the NIP-01 JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        """Build an event from a NIP-01 JSON object.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
            ValueError: If a field fails validation.
        """
        return cls(
            id=data["id"],
            pubkey=data["pubkey"],
            created_at=data["created_at"],
            kind=data["kind"],
            tags=data.get("tags", ()),
            content=data.get("content", ""),
            sig=data.get("sig", ""),
        )

    @classmethod
    def from_json(cls, raw: str) -> Event:
        """Parse a NIP-01 JSON string."""
        return cls.from_dict(json.loads(raw))

    @classmethod
    def from_nostr(cls, event: NostrEvent) -> Event:
        """Convert a ``nostr_sdk.Event`` into an immutable model."""
        validate_instance(event, NostrEvent, "event")
        return cls(
            id=event.id().to_hex(),
            pubkey=event.author().to_hex(),
            created_at=event.created_at().as_secs(),
            kind=event.kind().as_u16(),
            tags=[list(tag.as_vec()) for tag in event.tags().to_vec()],
            content=event.content(),
            sig=event.signature(),
        )

    def to_nostr(self) -> NostrEvent:
        """Rebuild the ``nostr_sdk.Event`` for publishing."""
        return NostrEvent.from_json(self.to_json())


@dataclass(frozen=True, slots=True)
class Rumor:
    """Unsigned inner event carried inside a gift wrap.

    The rumor's ``author`` and ``created_at`` are the true sender and send
    time of a wrapped message, unlike the randomized outer envelope.
    """

    author: str
    created_at: int
    kind: int
    tags: Tags = ()
    content: str = ""
    id: str | None = None

    def __post_init__(self) -> None:
        validate_hex_id(self.author, "author")
        validate_timestamp(self.created_at, "created_at")
        _validate_kind(self.kind)
        validate_str_no_null(self.content, "content")
        object.__setattr__(self, "tags", normalize_tags(self.tags, "tags"))

    @property
    def event_kind(self) -> EventKind:
        return EventKind.parse(self.kind)

    def tag_values(self, name: str) -> list[str]:
        return _tag_values(self.tags, name)

    def first_tag(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[0] if values else None

    @classmethod
    def from_nostr(cls, rumor: UnsignedEvent) -> Rumor:
        """Convert a ``nostr_sdk.UnsignedEvent``."""
        rumor_id = rumor.id()
        return cls(
            author=rumor.author().to_hex(),
            created_at=rumor.created_at().as_secs(),
            kind=rumor.kind().as_u16(),
            tags=[list(tag.as_vec()) for tag in rumor.tags().to_vec()],
            content=rumor.content(),
            id=rumor_id.to_hex() if rumor_id is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Unwrapped:
    """Result of opening a gift wrap: the seal signer and the inner rumor."""

    sender: str
    rumor: Rumor

    def __post_init__(self) -> None:
        validate_hex_id(self.sender, "sender")
        validate_instance(self.rumor, Rumor, "rumor")
