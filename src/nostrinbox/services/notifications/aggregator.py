"""Notification feed aggregation.

Turns interaction events addressed to the local identity into one
[NotificationItem][nostrinbox.models.notification.NotificationItem] per
event. Items are never grouped by target note; the feed is ordered by
timestamp, newest first.

Event kind to notification type:

```text
kind 1     reply      needs an e tag; excerpt of the reply text
kind 7     like       needs an e tag; the reaction content or a heart
kind 6     repost     needs an e tag
kind 9735  zap        needs an e tag; actor from the P tag when present
kind 9736  tip        e tag optional; "<amount> XMR", actor from P tag
kind 3     follow     routed to the FollowerBaseline, never inline
```
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from nostrinbox.models.constants import EventKind, NotificationType
from nostrinbox.models.filter import EventFilter
from nostrinbox.models.notification import NotificationItem
from nostrinbox.services.common.dedup import EventDeduper
from nostrinbox.services.common.utils import excerpt, is_hex_key
from nostrinbox.services.common.watermarks import NOTIFICATIONS_SCOPE

from .baseline import BaselineState


if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping

    from nostrinbox.models.event import Event
    from nostrinbox.models.profile import Profile
    from nostrinbox.services.common.watermarks import WatermarkStore

    from .baseline import FollowerBaseline


logger = logging.getLogger(__name__)

LIKE_FALLBACK = "❤️"
ZAP_EXCERPT = "Lightning Zap"
FOLLOW_EXCERPT = "followed you"

_TYPE_BY_KIND: dict[EventKind, NotificationType] = {
    EventKind.TEXT_NOTE: NotificationType.REPLY,
    EventKind.REACTION: NotificationType.LIKE,
    EventKind.REPOST: NotificationType.REPOST,
    EventKind.ZAP_RECEIPT: NotificationType.ZAP,
    EventKind.TIP_DISCLOSURE: NotificationType.TIP,
    EventKind.CONTACTS: NotificationType.FOLLOW,
}
_KIND_BY_TYPE: dict[NotificationType, EventKind] = {t: k for k, t in _TYPE_BY_KIND.items()}


def _referenced_note(event: Event) -> str | None:
    """The note an interaction refers to.

    The last ``e`` tag marked ``reply`` wins (NIP-10); otherwise the first
    ``e`` tag. Values that are not event ids count as absent.
    """
    e_tags = [tag for tag in event.tags if len(tag) >= 2 and tag[0] == "e"]  # noqa: PLR2004
    marked = [tag for tag in e_tags if len(tag) >= 4 and tag[3] == "reply"]  # noqa: PLR2004
    chosen = marked[-1] if marked else (e_tags[0] if e_tags else None)
    if chosen is None or not is_hex_key(chosen[1]):
        return None
    return chosen[1]


def _sender(event: Event) -> str:
    """Payer named in the ``P`` tag, falling back to the event author."""
    payer = event.first_tag("P")
    return payer if payer is not None and is_hex_key(payer) else event.pubkey


class NotificationAggregator:
    """Owns the notification feed of one identity.

    Args:
        pubkey: Local identity; its own events never notify.
        baseline: Follower baseline receiving kind 3 events.
        watermarks: Persistent "last viewed" watermark.
        excerpt_length: Characters kept from replies and target notes.
        max_items: Cap on non-follow items per ingest.
    """

    def __init__(
        self,
        pubkey: str,
        baseline: FollowerBaseline,
        watermarks: WatermarkStore,
        *,
        excerpt_length: int = 150,
        max_items: int = 100,
    ) -> None:
        self._pubkey = pubkey
        self._baseline = baseline
        self._watermarks = watermarks
        self._excerpt_length = excerpt_length
        self._max_items = max_items
        self._items: list[NotificationItem] = []

    @property
    def items(self) -> tuple[NotificationItem, ...]:
        return tuple(self._items)

    @property
    def baseline(self) -> FollowerBaseline:
        return self._baseline

    def __len__(self) -> int:
        return len(self._items)

    @staticmethod
    def filters_for(
        enabled_types: Collection[NotificationType], pubkey: str, limit: int
    ) -> list[EventFilter]:
        """One ``#p``-filter per enabled type. Nothing enabled, nothing queried."""
        return [
            EventFilter(kinds=(_KIND_BY_TYPE[t],), tags={"p": (pubkey,)}, limit=limit)
            for t in NotificationType
            if t in enabled_types
        ]

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def ingest(
        self,
        events: Iterable[Event],
        enabled_types: Collection[NotificationType],
        *,
        now: int | None = None,
        follows_answered: bool = True,
    ) -> list[NotificationItem]:
        """Rebuild the feed from a complete set of interaction events.

        Own events, duplicates, unknown kinds, disabled types and events
        without a required note reference are dropped. Follow events only
        feed the baseline; its new and recent followers become follow items
        stamped with their discovery time.

        Args:
            events: Interaction events addressed to the local identity.
            enabled_types: Notification types to keep.
            now: Wall-clock override for follower discovery times.
            follows_answered: False when no relay answered the follow
                query. An uninitialized baseline is then left untouched
                instead of being seeded with an empty follower set.
        """
        now = int(time.time()) if now is None else now
        deduper = EventDeduper()
        items: list[NotificationItem] = []
        followers: list[str] = []

        for event in events:
            if event.pubkey == self._pubkey or not deduper.admit(event):
                continue
            ntype = _TYPE_BY_KIND.get(event.event_kind)
            if ntype is None or ntype not in enabled_types:
                logger.debug("notification_skipped id=%s kind=%s", event.id, event.kind)
                continue
            if ntype is NotificationType.FOLLOW:
                if self._pubkey in event.tag_values("p"):
                    followers.append(event.pubkey)
                continue
            item = self._build_item(event, ntype)
            if item is None:
                logger.debug("notification_unattributed id=%s type=%s", event.id, ntype)
                continue
            items.append(item)

        items.sort(key=lambda i: (i.timestamp, i.id), reverse=True)
        items = items[: self._max_items]

        if NotificationType.FOLLOW in enabled_types:
            items.extend(await self._follow_items(followers, now, answered=follows_answered))
            items.sort(key=lambda i: (i.timestamp, i.id), reverse=True)

        await self._watermarks.load((NOTIFICATIONS_SCOPE,))
        self._items = items
        logger.debug("notifications_ingested items=%d unread=%d", len(items), self.unread_count)
        return list(items)

    async def _follow_items(
        self, followers: list[str], now: int, *, answered: bool
    ) -> list[NotificationItem]:
        # Seeding from an unanswered query would later flag every existing
        # follower as new
        if not answered and await self._baseline.load() is BaselineState.UNINITIALIZED:
            return []
        diff = await self._baseline.observe(followers, now=now)
        return [
            NotificationItem(
                id=f"follow-{pubkey}",
                type=NotificationType.FOLLOW,
                timestamp=discovered,
                actor=pubkey,
                content_excerpt=FOLLOW_EXCERPT,
            )
            for pubkey, discovered in diff.notable
        ]

    def _build_item(self, event: Event, ntype: NotificationType) -> NotificationItem | None:
        target = _referenced_note(event)
        if target is None and ntype is not NotificationType.TIP:
            return None

        actor = event.pubkey
        message: str | None = None
        if ntype is NotificationType.REPLY:
            text = excerpt(event.content, self._excerpt_length)
        elif ntype is NotificationType.LIKE:
            text = event.content or LIKE_FALLBACK
        elif ntype is NotificationType.REPOST:
            text = ""
        elif ntype is NotificationType.ZAP:
            actor = _sender(event)
            text = ZAP_EXCERPT
        else:
            actor = _sender(event)
            text = f"{event.first_tag('amount') or '?'} XMR"
            message = event.content or None

        return NotificationItem(
            id=event.id,
            type=ntype,
            timestamp=event.created_at,
            actor=actor,
            target_note_id=target,
            content_excerpt=text,
            message=message,
        )

    # -------------------------------------------------------------------------
    # Read side and acknowledgement
    # -------------------------------------------------------------------------

    @property
    def unread_count(self) -> int:
        watermark = self._watermarks.peek(NOTIFICATIONS_SCOPE)
        return sum(1 for item in self._items if item.timestamp > watermark)

    async def mark_viewed(self, at: int | None = None) -> int:
        """Acknowledge everything up to *at* (default: now)."""
        at = int(time.time()) if at is None else at
        return await self._watermarks.advance(NOTIFICATIONS_SCOPE, at)

    def filter(self, ntype: NotificationType | None = None) -> list[NotificationItem]:
        """Items of one type, or all items when *ntype* is None."""
        if ntype is None:
            return list(self._items)
        return [item for item in self._items if item.type is ntype]

    def actors(self) -> set[str]:
        return {item.actor for item in self._items}

    def target_note_ids(self) -> set[str]:
        return {item.target_note_id for item in self._items if item.target_note_id is not None}

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    def attach_profiles(self, profiles: Mapping[str, Profile]) -> None:
        self._items = [
            item.with_profile(profiles[item.actor]) if item.actor in profiles else item
            for item in self._items
        ]

    def attach_target_notes(self, notes: Mapping[str, str]) -> None:
        """Attach referenced note text; referenced ids absent from *notes* are flagged missing."""
        enriched: list[NotificationItem] = []
        for item in self._items:
            if item.target_note_id is None:
                enriched.append(item)
                continue
            content = notes.get(item.target_note_id)
            enriched.append(
                item.with_target(
                    excerpt(content, self._excerpt_length) if content is not None else None
                )
            )
        self._items = enriched
