"""Shared infrastructure for the messenger and notifier services.

Attributes:
    configs: [RelaysConfig][nostrinbox.services.common.configs.RelaysConfig]
        and [FanoutConfig][nostrinbox.services.common.configs.FanoutConfig],
        embedded in every service configuration.
    dedup: [EventDeduper][nostrinbox.services.common.dedup.EventDeduper],
        the per-operation seen-id set.
    fanout: [RelayFanout][nostrinbox.services.common.fanout.RelayFanout]
        for multi-relay query, subscribe and publish with bounded
        completion.
    watermarks: [WatermarkStore][nostrinbox.services.common.watermarks.WatermarkStore]
        persisting monotonic read watermarks.
    profiles: [ProfileCache][nostrinbox.services.common.profiles.ProfileCache]
        resolving kind 0 metadata.

See Also:
    [BaseService][nostrinbox.core.base_service.BaseService]: Abstract base
        class that all services extend.
"""

from .configs import DEFAULT_RELAYS, FanoutConfig, RelaysConfig, normalize_relay_url
from .dedup import EventDeduper
from .fanout import FanoutSubscription, QueryResult, RelayFanout
from .profiles import ProfileCache
from .watermarks import NOTIFICATIONS_SCOPE, WatermarkStore, dm_scope


__all__ = [
    "DEFAULT_RELAYS",
    "NOTIFICATIONS_SCOPE",
    "EventDeduper",
    "FanoutConfig",
    "FanoutSubscription",
    "ProfileCache",
    "QueryResult",
    "RelayFanout",
    "RelaysConfig",
    "WatermarkStore",
    "dm_scope",
    "normalize_relay_url",
]
