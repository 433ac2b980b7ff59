"""Shared constants for the models layer.

Defines enumerations used across model, protocol and service modules.
Placing them here avoids circular dependencies between the models and
utils layers.

See Also:
    [EventKind][nostrinbox.models.constants.EventKind]: Every consumer
        classifies events through ``EventKind.parse``.
    [nostrinbox.models.message][]: Uses
        [EncryptionScheme][nostrinbox.models.constants.EncryptionScheme].
    [nostrinbox.models.notification][]: Uses
        [NotificationType][nostrinbox.models.constants.NotificationType].
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics.

    Attributes:
        MESSENGER: Encrypted direct message service
            ([Messenger][nostrinbox.services.messages.Messenger]).
        NOTIFIER: Interaction feed service
            ([Notifier][nostrinbox.services.notifications.Notifier]).
    """

    MESSENGER = "messenger"
    NOTIFIER = "notifier"


class EventKind(IntEnum):
    """Nostr event kinds understood by nostrinbox.

    The enum doubles as a closed variant type: ``EventKind.parse()`` maps
    any integer outside the known set to ``UNKNOWN`` instead of raising,
    so dispatch code can match on members and ignore everything else.

    Attributes:
        METADATA: Kind 0 -- user profile metadata (NIP-01).
        TEXT_NOTE: Kind 1 -- short text note, also used for replies.
        CONTACTS: Kind 3 -- follow list (NIP-02).
        ENCRYPTED_DM: Kind 4 -- legacy encrypted direct message (NIP-04).
        REPOST: Kind 6 -- repost (NIP-18).
        REACTION: Kind 7 -- reaction (NIP-25).
        SEAL: Kind 13 -- sealed rumor inside a gift wrap (NIP-59).
        PRIVATE_DM: Kind 14 -- private direct message rumor (NIP-17).
        GIFT_WRAP: Kind 1059 -- gift wrap envelope (NIP-59).
        ZAP_RECEIPT: Kind 9735 -- lightning zap receipt (NIP-57).
        TIP_DISCLOSURE: Kind 9736 -- Monero tip disclosure.
        APP_DATA: Kind 30078 -- application specific data (NIP-78).
        UNKNOWN: Any other kind. Never dispatched.
    """

    UNKNOWN = -1
    METADATA = 0
    TEXT_NOTE = 1
    CONTACTS = 3
    ENCRYPTED_DM = 4
    REPOST = 6
    REACTION = 7
    SEAL = 13
    PRIVATE_DM = 14
    GIFT_WRAP = 1059
    ZAP_RECEIPT = 9735
    TIP_DISCLOSURE = 9736
    APP_DATA = 30_078

    @classmethod
    def _missing_(cls, value: object) -> EventKind | None:
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.UNKNOWN
        return None

    @classmethod
    def parse(cls, kind: int) -> EventKind:
        """Classify a raw kind integer, returning ``UNKNOWN`` when unrecognised."""
        return cls(kind)


class EncryptionScheme(StrEnum):
    """Direct message envelope schemes.

    Attributes:
        LEGACY: NIP-04 kind 4 events. Routing metadata is public and
            ``created_at`` is authoritative.
        WRAPPED: NIP-17 private messages inside NIP-59 gift wraps. Outer
            metadata is randomized; the true author and time live in the
            inner rumor.
    """

    LEGACY = "nip04"
    WRAPPED = "nip17"


class NotificationType(StrEnum):
    """Interaction types surfaced in the notification feed."""

    REPLY = "reply"
    LIKE = "like"
    REPOST = "repost"
    ZAP = "zap"
    TIP = "tip"
    FOLLOW = "follow"


EVENT_KIND_MAX = 65_535
