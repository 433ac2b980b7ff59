"""The two inbox services plus shared relay plumbing.

Services are the top layer of the dependency DAG, depending on
[nostrinbox.core][nostrinbox.core], [nostrinbox.nips][nostrinbox.nips],
[nostrinbox.utils][nostrinbox.utils], and [nostrinbox.models][nostrinbox.models].
Each service extends [BaseService][nostrinbox.core.base_service.BaseService]
and implements ``async def run()`` for one refresh cycle.

Attributes:
    Messenger: Encrypted direct messages over NIP-04 and NIP-17, with
        one-shot refresh, live watching and sending with scheme fallback.
    Notifier: Replies, likes, reposts, zaps, tips and new followers
        addressed to the local identity.

Note:
    Both services follow the same lifecycle pattern: build from YAML or a
    config object, enter as an async context manager, then call ``run()``
    for a single cycle or ``run_forever()`` for continuous operation.

See Also:
    [BaseService][nostrinbox.core.base_service.BaseService]: Abstract base
        class all services extend.
    [common][nostrinbox.services.common]: Relay fan-out, deduplication,
        watermarks and profile caching shared by both services.

Examples:
    ```python
    from nostrinbox.services import Messenger

    messenger = Messenger.from_yaml("config/messenger.yaml")
    async with messenger:
        await messenger.run()
    ```
"""

from .messages import (
    Messenger,
    MessagesConfig,
    SendResult,
)
from .notifications import (
    NotificationsConfig,
    Notifier,
)


__all__ = [
    "MessagesConfig",
    "Messenger",
    "NotificationsConfig",
    "Notifier",
    "SendResult",
]
