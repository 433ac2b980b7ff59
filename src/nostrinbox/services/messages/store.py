"""Per-peer conversation reconciliation with durable unread accounting.

The [ConversationStore][nostrinbox.services.messages.store.ConversationStore]
owns every thread. It is fed
[NormalizedMessage][nostrinbox.models.message.NormalizedMessage] values from
both envelope schemes and never needs to know which one a message came in.

Unread accounting rests on per-peer watermarks kept in a
[WatermarkStore][nostrinbox.services.common.watermarks.WatermarkStore]:

- A received message counts as unread when it is newer than the peer's
  watermark and the peer is not the open conversation.
- Opening a conversation clears the displayed count without touching
  the watermark.
- [mark_read()][nostrinbox.services.messages.store.ConversationStore.mark_read]
  is the durable acknowledgement; it advances the watermark so a reload
  does not resurrect the count.
"""

from __future__ import annotations

import bisect
import logging
from typing import TYPE_CHECKING

from nostrinbox.models.message import Conversation
from nostrinbox.services.common.watermarks import dm_scope


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrinbox.models.message import NormalizedMessage
    from nostrinbox.services.common.watermarks import WatermarkStore


logger = logging.getLogger(__name__)


class _Thread:
    """Mutable per-peer state. Never handed out; see ``snapshot()``."""

    __slots__ = ("ids", "messages", "unread")

    def __init__(self) -> None:
        self.messages: list[NormalizedMessage] = []
        self.ids: set[str] = set()
        self.unread = 0

    def insert(self, message: NormalizedMessage) -> bool:
        if message.id in self.ids:
            return False
        bisect.insort(self.messages, message, key=lambda m: m.sort_key)
        self.ids.add(message.id)
        return True

    def newest_received(self) -> int | None:
        for message in reversed(self.messages):
            if message.received:
                return message.timestamp
        return None

    def snapshot(self, peer: str) -> Conversation:
        return Conversation(peer=peer, messages=tuple(self.messages), unread_count=self.unread)


class ConversationStore:
    """Owns all conversations of one local identity.

    Args:
        watermarks: Persistent per-peer read watermarks.
    """

    def __init__(self, watermarks: WatermarkStore) -> None:
        self._watermarks = watermarks
        self._threads: dict[str, _Thread] = {}
        self._started: set[str] = set()
        self._current_peer: str | None = None
        self._rebuilds: list[list[NormalizedMessage]] = []

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def ingest_batch(self, messages: Iterable[NormalizedMessage]) -> None:
        """Rebuild every conversation from a complete set of messages.

        Duplicate ids are collapsed. Unread counts are recomputed from the
        persisted watermarks; the open conversation stays at zero.
        Conversations opened with
        [start_conversation()][nostrinbox.services.messages.store.ConversationStore.start_conversation]
        survive even when the batch has no message for them.

        Live messages ingested while the watermarks load are carried into
        the rebuilt state.
        """
        batch = list(messages)
        arrivals: list[NormalizedMessage] = []
        self._rebuilds.append(arrivals)
        try:
            peers = {m.peer for m in batch} | self._started
            while True:
                await self._watermarks.load(dm_scope(peer) for peer in peers)
                late = {m.peer for m in arrivals} - peers
                if not late:
                    break
                peers |= late
        finally:
            self._rebuilds.remove(arrivals)

        # No awaits from here on: the swap below is atomic for live ingestion
        threads: dict[str, _Thread] = {}
        for message in (*batch, *arrivals):
            threads.setdefault(message.peer, _Thread()).insert(message)
        for peer in self._started:
            threads.setdefault(peer, _Thread())

        for peer, thread in threads.items():
            if peer == self._current_peer:
                continue
            watermark = self._watermarks.peek(dm_scope(peer))
            thread.unread = sum(
                1 for m in thread.messages if m.received and m.timestamp > watermark
            )

        self._threads = threads
        logger.debug(
            "conversations_rebuilt peers=%d messages=%d unread=%d",
            len(threads),
            sum(len(t.messages) for t in threads.values()),
            self.total_unread,
        )

    async def ingest_one(self, message: NormalizedMessage) -> bool:
        """Add one live message.

        Returns:
            False if a message with the same id is already in the thread.
        """
        for arrivals in self._rebuilds:
            arrivals.append(message)
        peer = message.peer
        thread = self._threads.setdefault(peer, _Thread())
        if not thread.insert(message):
            return False
        if message.received and peer != self._current_peer:
            watermark = await self._watermarks.get(dm_scope(peer))
            if message.timestamp > watermark:
                thread.unread += 1
        return True

    async def record_sent(self, message: NormalizedMessage) -> bool:
        """Commit a message the local identity just published."""
        if not message.sent:
            raise ValueError("record_sent expects a message authored by the local identity")
        return await self.ingest_one(message)

    # -------------------------------------------------------------------------
    # Selection and acknowledgement
    # -------------------------------------------------------------------------

    def start_conversation(self, peer: str) -> Conversation:
        """Create an empty conversation the user initiated."""
        Conversation(peer=peer)  # validates the pubkey
        self._started.add(peer)
        return self._threads.setdefault(peer, _Thread()).snapshot(peer)

    def select_conversation(self, peer: str) -> Conversation:
        """Open *peer*'s thread and clear its displayed unread count.

        The watermark is not moved; only
        [mark_read()][nostrinbox.services.messages.store.ConversationStore.mark_read]
        persists the acknowledgement.
        """
        if peer not in self._threads:
            self.start_conversation(peer)
        self._current_peer = peer
        thread = self._threads[peer]
        thread.unread = 0
        return thread.snapshot(peer)

    def close_conversation(self) -> None:
        self._current_peer = None

    async def mark_read(self, peer: str | None = None) -> int:
        """Durably acknowledge *peer*'s thread (default: the open one).

        Returns:
            The peer's watermark after the call.

        Raises:
            KeyError: If there is no such conversation.
        """
        target = peer if peer is not None else self._current_peer
        if target is None or target not in self._threads:
            raise KeyError(f"no conversation with {target!r}")
        thread = self._threads[target]
        thread.unread = 0
        newest = thread.newest_received()
        if newest is None:
            return await self._watermarks.get(dm_scope(target))
        return await self._watermarks.advance(dm_scope(target), newest)

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def current_peer(self) -> str | None:
        return self._current_peer

    def get(self, peer: str) -> Conversation | None:
        thread = self._threads.get(peer)
        return thread.snapshot(peer) if thread is not None else None

    def conversations(self) -> list[Conversation]:
        """All conversations, most recent activity first."""
        snapshots = [thread.snapshot(peer) for peer, thread in self._threads.items()]
        snapshots.sort(key=lambda c: (c.last_activity, c.peer), reverse=True)
        return snapshots

    @property
    def total_unread(self) -> int:
        return sum(thread.unread for thread in self._threads.values())

    def __contains__(self, peer: object) -> bool:
        return peer in self._threads

    def __len__(self) -> int:
        return len(self._threads)
