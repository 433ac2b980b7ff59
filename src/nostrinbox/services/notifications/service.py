"""Notifier service for nostrinbox.

Builds the notification feed of one identity from a one-shot fan-out
query per refresh:

1. Optionally pull the follower baseline mirrored on relays (NIP-78) and
   merge it into the local one.
2. Query every message relay with one ``#p`` filter per enabled
   notification type.
3. Aggregate the events into notification items; kind 3 contact lists
   go through the [FollowerBaseline][nostrinbox.services.notifications.baseline.FollowerBaseline].
4. Mirror a changed baseline back to the write relays, then enrich the
   items with actor profiles and referenced note excerpts.

Unread state is a single persisted "last viewed" watermark; see
[mark_viewed()][nostrinbox.services.notifications.Notifier.mark_viewed].

See Also:
    [NotificationsConfig][nostrinbox.services.notifications.NotificationsConfig]:
        Configuration model for this service.
    [Messenger][nostrinbox.services.messages.Messenger]: Sibling service
        for direct messages.

Examples:
    ```python
    from nostrinbox.services import Notifier

    notifier = Notifier.from_yaml("config/notifier.yaml")
    async with notifier:
        items = await notifier.refresh()
        await notifier.mark_viewed()
    ```
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ClassVar

from nostrinbox.core.base_service import BaseService
from nostrinbox.core.exceptions import MissingIdentityError, NoRelaysError
from nostrinbox.core.storage import create_store
from nostrinbox.models.constants import ServiceName
from nostrinbox.models.filter import EventFilter
from nostrinbox.nips.nip78 import baseline_filter, build_baseline_event, latest_baseline
from nostrinbox.services.common.fanout import RelayFanout
from nostrinbox.services.common.profiles import ProfileCache
from nostrinbox.services.common.watermarks import WatermarkStore
from nostrinbox.utils.keys import LocalKeyStore
from nostrinbox.utils.protocol import NostrRelayClient

from .aggregator import NotificationAggregator
from .baseline import FollowerBaseline
from .configs import NotificationsConfig


if TYPE_CHECKING:
    from types import TracebackType

    from nostrinbox.core.storage import KeyValueStore
    from nostrinbox.models.constants import NotificationType
    from nostrinbox.models.notification import NotificationItem
    from nostrinbox.utils.keys import KeyStore
    from nostrinbox.utils.protocol import RelayClient


_TARGET_BATCH_SIZE = 100


class Notifier(BaseService[NotificationsConfig]):
    """Notification feed service for one local identity.

    Like the [Messenger][nostrinbox.services.messages.Messenger], the relay
    client and key store are injectable and default to ``NostrRelayClient``
    and ``LocalKeyStore`` built from the configuration.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.NOTIFIER
    CONFIG_CLASS: ClassVar[type[NotificationsConfig]] = NotificationsConfig

    def __init__(
        self,
        store: KeyValueStore | None = None,
        config: NotificationsConfig | None = None,
        *,
        relay_client: RelayClient | None = None,
        key_store: KeyStore | None = None,
    ) -> None:
        config = config or NotificationsConfig()
        super().__init__(
            store=store if store is not None else create_store(config.storage),
            config=config,
        )
        self._config: NotificationsConfig
        self._owns_client = relay_client is None
        self._relay_client: RelayClient = relay_client or NostrRelayClient(
            keys=config.keys.keys,
            proxy_url=config.relays.proxy_url,
            connect_timeout=config.fanout.query_timeout,
            publish_timeout=config.fanout.publish_timeout,
        )
        self._key_store = key_store if key_store is not None else LocalKeyStore.from_config(
            config.keys
        )
        self._fanout = RelayFanout(
            self._relay_client,
            query_timeout=config.fanout.query_timeout,
            backlog_timeout=config.fanout.backlog_timeout,
            publish_timeout=config.fanout.publish_timeout,
        )
        self._watermarks = WatermarkStore(self._store)
        self._profiles = ProfileCache(self._fanout)
        self._push_pending = False
        self._aggregator: NotificationAggregator | None = None
        if self._key_store is not None:
            pubkey = self._key_store.public_key()
            self._aggregator = NotificationAggregator(
                pubkey,
                FollowerBaseline(self._store, pubkey, window_days=config.follow_window_days),
                self._watermarks,
                excerpt_length=config.excerpt_length,
                max_items=config.max_items,
            )

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._owns_client and isinstance(self._relay_client, NostrRelayClient):
            await self._relay_client.close()
        await super().__aexit__(exc_type, exc_val, exc_tb)

    async def run(self) -> None:
        """One refresh cycle; see [refresh()][nostrinbox.services.notifications.Notifier.refresh]."""
        await self.refresh()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def items(self) -> tuple[NotificationItem, ...]:
        return self._aggregator.items if self._aggregator is not None else ()

    @property
    def unread_count(self) -> int:
        return self._aggregator.unread_count if self._aggregator is not None else 0

    @property
    def baseline(self) -> FollowerBaseline:
        return self._require_identity()[1].baseline

    @property
    def fanout(self) -> RelayFanout:
        return self._fanout

    def filter(self, ntype: NotificationType | None = None) -> list[NotificationItem]:
        return self._aggregator.filter(ntype) if self._aggregator is not None else []

    def _require_identity(self) -> tuple[KeyStore, NotificationAggregator]:
        if self._key_store is None or self._aggregator is None:
            raise MissingIdentityError(
                f"no private key available (set {self._config.keys.keys_env})"
            )
        return self._key_store, self._aggregator

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self, now: int | None = None) -> list[NotificationItem]:
        """Rebuild the notification feed.

        Args:
            now: Wall-clock override for follower discovery times.

        Returns:
            Items ordered newest first.

        Raises:
            MissingIdentityError: If no private key is configured.
            NoRelaysError: If no read relay is configured.
        """
        key_store, aggregator = self._require_identity()
        relays = self._config.relays.message_relays()
        if not relays:
            raise NoRelaysError("no read relays configured")
        pubkey = key_store.public_key()
        enabled = self._config.types.enabled()

        if self._config.baseline_relay_sync:
            await self._pull_baseline(key_store, relays)
        await aggregator.baseline.load()
        before = aggregator.baseline.snapshot

        filters = NotificationAggregator.filters_for(enabled, pubkey, self._config.limit)
        result = await self._fanout.query_result(relays, filters)
        events = result.events
        items = await aggregator.ingest(
            events, enabled, now=now, follows_answered=bool(result.answered)
        )

        after = aggregator.baseline.snapshot
        if self._config.baseline_relay_sync and after is not None and (
            after != before or self._push_pending
        ):
            self._push_pending = not await self._push_baseline(key_store)

        if self._config.fetch_profiles and items:
            profiles = await self._profiles.fetch(
                aggregator.actors(), self._config.relays.read_relays()
            )
            aggregator.attach_profiles(profiles)
        if self._config.fetch_targets:
            await self._fetch_targets(aggregator, relays)

        self.set_gauge("notifications", len(aggregator))
        self.set_gauge("unread_notifications", aggregator.unread_count)
        self._logger.info(
            "notifications_refreshed",
            events=len(events),
            items=len(aggregator),
            unread=aggregator.unread_count,
            followers=aggregator.baseline.follower_count,
        )
        return list(aggregator.items)

    async def mark_viewed(self, at: int | None = None) -> int:
        """Mark every notification up to *at* (default: now) as read."""
        _key_store, aggregator = self._require_identity()
        watermark = await aggregator.mark_viewed(at)
        self.set_gauge("unread_notifications", aggregator.unread_count)
        return watermark

    async def _fetch_targets(self, aggregator: NotificationAggregator, relays: list[str]) -> None:
        ids = sorted(aggregator.target_note_ids())
        if not ids:
            return
        filters = [
            EventFilter(
                ids=tuple(ids[i : i + _TARGET_BATCH_SIZE]),
                limit=len(ids[i : i + _TARGET_BATCH_SIZE]),
            )
            for i in range(0, len(ids), _TARGET_BATCH_SIZE)
        ]
        events = await self._fanout.query(relays, filters)
        wanted = set(ids)
        aggregator.attach_target_notes({e.id: e.content for e in events if e.id in wanted})

    # -------------------------------------------------------------------------
    # Baseline mirror
    # -------------------------------------------------------------------------

    async def _pull_baseline(self, key_store: KeyStore, relays: list[str]) -> None:
        events = await self._fanout.query(relays, [baseline_filter(key_store.public_key())])
        snapshot = await latest_baseline(key_store, events)
        if snapshot is not None and await self.baseline.adopt(snapshot):
            self._logger.info("baseline_pulled", followers=len(snapshot))

    async def _push_baseline(self, key_store: KeyStore) -> bool:
        """Mirror the local baseline to the write relays.

        Never raises: a failed push is logged and retried on the next
        refresh.

        Returns:
            True if at least one relay accepted the mirror.
        """
        snapshot = self.baseline.snapshot
        relays = self._config.relays.write_relays()
        if snapshot is None or not relays:
            return True
        try:
            event = await build_baseline_event(key_store, snapshot)
            outcomes = await self._fanout.publish(relays, event)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001  # signing backends raise arbitrary types
            self._logger.warning("baseline_push_failed", error=str(e))
            return False
        if not any(outcome.ok for outcome in outcomes):
            self._logger.warning("baseline_push_rejected", id=event.id)
            return False
        self._logger.debug("baseline_pushed", id=event.id, followers=len(snapshot))
        return True
