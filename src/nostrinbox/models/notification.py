"""Notification feed items.

One [NotificationItem][nostrinbox.models.notification.NotificationItem]
per qualifying interaction event. Items are never grouped by target note.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from ._validation import validate_hex_id, validate_timestamp
from .constants import NotificationType
from .profile import Profile


@dataclass(frozen=True, slots=True)
class NotificationItem:
    """One interaction in the feed.

    Attributes:
        id: Originating event id, or ``follow-<pubkey>`` for follow items
            built from the follower baseline.
        type: Interaction type.
        timestamp: Event ``created_at``, or the local discovery time for
            follow items.
        actor: Public key of the user who interacted.
        target_note_id: Referenced note, always None for follows.
        content_excerpt: Type-specific rendering text.
        message: Free-form comment attached to a tip or zap.
        profile: Cached actor profile, attached after the fact.
        target_note: Excerpt of the referenced note, attached after the fact.
        target_missing: True when the referenced note could not be found.
    """

    id: str
    type: NotificationType
    timestamp: int
    actor: str
    target_note_id: str | None = None
    content_excerpt: str = ""
    message: str | None = None
    profile: Profile | None = None
    target_note: str | None = None
    target_missing: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", NotificationType(self.type))
        validate_timestamp(self.timestamp, "timestamp")
        validate_hex_id(self.actor, "actor")
        if self.type is NotificationType.FOLLOW:
            if self.target_note_id is not None or self.target_note is not None:
                raise ValueError("follow notifications cannot reference a note")
        elif self.target_note_id is not None:
            validate_hex_id(self.target_note_id, "target_note_id")

    @property
    def is_follow(self) -> bool:
        return self.type is NotificationType.FOLLOW

    def with_profile(self, profile: Profile) -> NotificationItem:
        return replace(self, profile=profile)

    def with_target(self, note_excerpt: str | None) -> NotificationItem:
        """Attach the referenced note excerpt, or flag it missing when None."""
        if self.is_follow:
            return self
        if note_excerpt is None:
            return replace(self, target_note=None, target_missing=True)
        return replace(self, target_note=note_excerpt, target_missing=False)
