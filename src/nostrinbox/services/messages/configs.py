"""Messenger service configuration models.

See Also:
    [Messenger][nostrinbox.services.messages.Messenger]: The service class
        that consumes these configurations.
    [BaseServiceConfig][nostrinbox.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures`` and
        ``metrics`` fields.

Examples:
    ```yaml
    interval: 60
    wrapped_enabled: true
    lookback_days: 30
    relays:
      read: [wss://relay.damus.io, wss://nos.lol]
      write: [wss://nos.lol]
    keys:
      keys_env: PRIVATE_KEY
    ```
"""

from __future__ import annotations

from pydantic import Field

from nostrinbox.core.base_service import BaseServiceConfig
from nostrinbox.core.storage import StorageConfig
from nostrinbox.services.common.configs import FanoutConfig, RelaysConfig
from nostrinbox.utils.keys import KeysConfig


class MessagesConfig(BaseServiceConfig):
    """Configuration for the [Messenger][nostrinbox.services.messages.Messenger].

    Attributes:
        wrapped_enabled: Try NIP-17 gift wraps first when sending; legacy
            NIP-04 is the fallback. Receiving always handles both.
        lookback_days: How far back gift wraps are requested. Their outer
            ``created_at`` is randomized, so the window is generous.
        legacy_limit: Per-filter limit for kind 4 queries.
        wrapped_limit: Per-filter limit for kind 1059 queries.
        fetch_profiles: Resolve kind 0 metadata for conversation partners.
    """

    relays: RelaysConfig = Field(default_factory=RelaysConfig)
    fanout: FanoutConfig = Field(default_factory=FanoutConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)

    wrapped_enabled: bool = Field(default=True, description="Send with NIP-17 first")
    lookback_days: int = Field(
        default=30, ge=1, le=365, description="Gift wrap lookback window in days"
    )
    legacy_limit: int = Field(default=500, ge=1, le=5000, description="Kind 4 query limit")
    wrapped_limit: int = Field(default=100, ge=1, le=5000, description="Kind 1059 query limit")
    fetch_profiles: bool = Field(default=True, description="Resolve partner profiles")

    @property
    def lookback_seconds(self) -> int:
        return self.lookback_days * 86_400
