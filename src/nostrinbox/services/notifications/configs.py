"""Notifier service configuration models.

See Also:
    [Notifier][nostrinbox.services.notifications.Notifier]: The service
        class that consumes these configurations.
    [BaseServiceConfig][nostrinbox.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures`` and
        ``metrics`` fields.

Examples:
    ```yaml
    interval: 120
    types:
      replies: true
      likes: true
      reposts: false
      zaps: true
      tips: true
      follows: true
    follow_window_days: 7
    ```
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from nostrinbox.core.base_service import BaseServiceConfig
from nostrinbox.core.storage import StorageConfig
from nostrinbox.models.constants import NotificationType
from nostrinbox.services.common.configs import FanoutConfig, RelaysConfig
from nostrinbox.utils.keys import KeysConfig


class NotificationTypesConfig(BaseModel):
    """Which interaction types are queried and surfaced.

    Disabled types are neither requested from relays nor shown.
    """

    replies: bool = True
    likes: bool = True
    reposts: bool = True
    zaps: bool = True
    tips: bool = True
    follows: bool = True

    def enabled(self) -> frozenset[NotificationType]:
        flags = {
            NotificationType.REPLY: self.replies,
            NotificationType.LIKE: self.likes,
            NotificationType.REPOST: self.reposts,
            NotificationType.ZAP: self.zaps,
            NotificationType.TIP: self.tips,
            NotificationType.FOLLOW: self.follows,
        }
        return frozenset(t for t, on in flags.items() if on)


class NotificationsConfig(BaseServiceConfig):
    """Configuration for the [Notifier][nostrinbox.services.notifications.Notifier].

    Attributes:
        types: Enabled interaction types.
        limit: Per-filter relay query limit.
        max_items: Maximum non-follow items kept in the feed.
        excerpt_length: Characters of a reply or target note shown.
        follow_window_days: How long a follower stays "recent".
        fetch_profiles: Resolve kind 0 metadata for actors.
        fetch_targets: Fetch the notes that interactions refer to.
        baseline_relay_sync: Mirror the follower baseline to relays as an
            encrypted NIP-78 app-data event.
    """

    relays: RelaysConfig = Field(default_factory=RelaysConfig)
    fanout: FanoutConfig = Field(default_factory=FanoutConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)
    types: NotificationTypesConfig = Field(default_factory=NotificationTypesConfig)

    limit: int = Field(default=100, ge=1, le=5000, description="Per-filter query limit")
    max_items: int = Field(default=100, ge=1, le=5000, description="Feed size cap")
    excerpt_length: int = Field(default=150, ge=10, le=2000, description="Excerpt length")
    follow_window_days: int = Field(
        default=7, ge=1, le=90, description="Days a new follower stays visible"
    )
    fetch_profiles: bool = Field(default=True, description="Resolve actor profiles")
    fetch_targets: bool = Field(default=True, description="Fetch referenced notes")
    baseline_relay_sync: bool = Field(
        default=False, description="Mirror the follower baseline to relays"
    )
