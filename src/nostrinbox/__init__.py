r"""nostrinbox -- Encrypted direct messages and notifications for one Nostr identity.

Two async services read a user's inbox from a set of relays: the
Messenger loads, follows and sends NIP-04 and NIP-17 direct messages, and
the Notifier builds a feed of replies, reactions, reposts, zaps, tips and
new followers.

Imports flow strictly downward:

```text
              services         Fan-out, conversations, notifications
             /   |   \
          core  nips  utils    Infrastructure, envelopes, keys and transport
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Pure frozen dataclasses. Zero I/O, depends only on stdlib.
    core: Key/value storage, base service, exceptions, logging, metrics.
    nips: NIP-04 and NIP-17 envelopes, NIP-78 baseline mirror.
    utils: Nostr key management and relay transport.
    services: Business logic. Messenger and Notifier.

Note:
    For lightweight usage, import directly from subpackages::

        from nostrinbox.models import Event
        from nostrinbox.services import Messenger

    Top-level imports (``from nostrinbox import Messenger``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostrinbox")

__all__ = [
    "BaseService",
    "Conversation",
    "Event",
    "EventFilter",
    "Logger",
    "MessagesConfig",
    "Messenger",
    "NormalizedMessage",
    "NotificationItem",
    "NotificationsConfig",
    "Notifier",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("nostrinbox.core", "BaseService"),
    "Logger": ("nostrinbox.core", "Logger"),
    "Conversation": ("nostrinbox.models", "Conversation"),
    "Event": ("nostrinbox.models", "Event"),
    "EventFilter": ("nostrinbox.models", "EventFilter"),
    "NormalizedMessage": ("nostrinbox.models", "NormalizedMessage"),
    "NotificationItem": ("nostrinbox.models", "NotificationItem"),
    "MessagesConfig": ("nostrinbox.services", "MessagesConfig"),
    "Messenger": ("nostrinbox.services", "Messenger"),
    "NotificationsConfig": ("nostrinbox.services", "NotificationsConfig"),
    "Notifier": ("nostrinbox.services", "Notifier"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrinbox' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
