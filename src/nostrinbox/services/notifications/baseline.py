"""Follower baseline: "new follower" detection without per-edge timestamps.

Contact lists (kind 3) are replaceable whole-list snapshots, so relays
cannot say *when* someone started following. The baseline records the
local wall-clock time at which each follower was first observed and diffs
every new observation against it:

- **Uninitialized** (nothing persisted): the observed set becomes the
  baseline with a first-observed time backdated outside the trailing
  window, and no follow notification is produced.
- **Tracking**: pubkeys never seen before are new and stamped with the
  current time; known pubkeys first observed inside the trailing window
  are recent. The union of observed and known is persisted.

A baseline whose members were all first observed within one hour of
each other, recently, is treated as corrupted (typically a lost baseline
re-created without backdating) and reset as on first run.

See Also:
    [FollowerBaselineSnapshot][nostrinbox.models.baseline.FollowerBaselineSnapshot]:
        Persisted payload.
    [NotificationAggregator][nostrinbox.services.notifications.aggregator.NotificationAggregator]:
        Turns the diff into follow items.
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import TYPE_CHECKING

from nostrinbox.models.baseline import FollowerBaselineSnapshot, FollowerDiff


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrinbox.core.storage import KeyValueStore


logger = logging.getLogger(__name__)

KEY_PREFIX = "follower-baseline:"
SECONDS_PER_DAY = 86_400
INITIAL_BACKDATE_DAYS = 30
CORRUPTION_MIN_FOLLOWERS = 5
CORRUPTION_MAX_SPREAD = 3_600


class BaselineState(StrEnum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"


class FollowerBaseline:
    """Persistent follower set of one identity.

    Args:
        store: Key/value persistence.
        pubkey: Identity whose followers are tracked.
        window_days: Trailing window in which a follower counts as recent.
    """

    def __init__(self, store: KeyValueStore, pubkey: str, *, window_days: int = 7) -> None:
        self._store = store
        self._pubkey = pubkey
        self._window = window_days * SECONDS_PER_DAY
        self._snapshot: FollowerBaselineSnapshot | None = None
        self._loaded = False

    @property
    def key(self) -> str:
        return KEY_PREFIX + self._pubkey

    @property
    def state(self) -> BaselineState:
        if self._snapshot is None:
            return BaselineState.UNINITIALIZED
        return BaselineState.TRACKING

    @property
    def snapshot(self) -> FollowerBaselineSnapshot | None:
        return self._snapshot

    @property
    def follower_count(self) -> int:
        return len(self._snapshot) if self._snapshot is not None else 0

    def is_known(self, pubkey: str) -> bool:
        return self._snapshot is not None and pubkey in self._snapshot

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def load(self) -> BaselineState:
        """Read the persisted snapshot once. Invalid payloads count as absent."""
        if self._loaded:
            return self.state
        self._loaded = True
        raw = await self._store.get(self.key)
        if raw is not None:
            try:
                self._snapshot = FollowerBaselineSnapshot.from_bytes(raw)
            except ValueError as e:
                logger.warning("baseline_invalid pubkey=%s error=%s", self._pubkey, e)
                self._snapshot = None
        return self.state

    async def _save(self, snapshot: FollowerBaselineSnapshot) -> None:
        await self._store.set(self.key, snapshot.to_bytes())
        self._snapshot = snapshot

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    async def observe(self, followers: Iterable[str], *, now: int | None = None) -> FollowerDiff:
        """Diff an observed follower set against the baseline and persist the union."""
        now = int(time.time()) if now is None else now
        observed = set(followers)
        await self.load()

        if self._snapshot is None:
            await self.reset(observed, now=now)
            logger.info("baseline_created pubkey=%s followers=%d", self._pubkey, len(observed))
            return FollowerDiff(first_run=True)

        if self.is_corrupted(self._snapshot, now=now, window=self._window):
            await self.reset(observed | self._snapshot.known_followers, now=now)
            logger.warning("baseline_corrupted_reset pubkey=%s", self._pubkey)
            return FollowerDiff(first_run=True)

        known = self._snapshot.followers
        cutoff = now - self._window
        new = sorted(observed.difference(known))
        recent = sorted(
            (pubkey, first_seen) for pubkey, first_seen in known.items() if first_seen > cutoff
        )

        if new:
            merged = dict(known)
            merged.update(dict.fromkeys(new, now))
            await self._save(
                FollowerBaselineSnapshot(
                    followers=merged,
                    created_at=self._snapshot.created_at,
                    last_updated=now,
                )
            )
        logger.debug(
            "baseline_diff pubkey=%s new=%d recent=%d known=%d",
            self._pubkey,
            len(new),
            len(recent),
            len(known),
        )
        return FollowerDiff(
            new_followers=tuple((pubkey, now) for pubkey in new),
            recent_followers=tuple(recent),
        )

    async def reset(
        self, followers: Iterable[str], *, now: int | None = None
    ) -> FollowerBaselineSnapshot:
        """Replace the baseline with *followers*, backdated outside the window."""
        now = int(time.time()) if now is None else now
        backdate = max(INITIAL_BACKDATE_DAYS * SECONDS_PER_DAY, self._window + SECONDS_PER_DAY)
        first_seen = max(now - backdate, 0)
        snapshot = FollowerBaselineSnapshot(
            followers=dict.fromkeys(followers, first_seen),
            created_at=now,
            last_updated=now,
        )
        self._loaded = True
        await self._save(snapshot)
        return snapshot

    async def adopt(self, other: FollowerBaselineSnapshot) -> bool:
        """Merge a snapshot from another device (e.g. the relay mirror).

        Each follower keeps the earliest first-observed time of both sides.

        Returns:
            True if the local baseline changed.
        """
        await self.load()
        if self._snapshot is None:
            await self._save(other)
            logger.info("baseline_adopted pubkey=%s followers=%d", self._pubkey, len(other))
            return True

        merged = dict(self._snapshot.followers)
        for pubkey, first_seen in other.followers.items():
            if pubkey not in merged or first_seen < merged[pubkey]:
                merged[pubkey] = first_seen
        if merged == dict(self._snapshot.followers):
            return False
        await self._save(
            FollowerBaselineSnapshot(
                followers=merged,
                created_at=min(self._snapshot.created_at, other.created_at),
                last_updated=max(self._snapshot.last_updated, other.last_updated),
            )
        )
        logger.info("baseline_merged pubkey=%s followers=%d", self._pubkey, len(merged))
        return True

    @staticmethod
    def is_corrupted(snapshot: FollowerBaselineSnapshot, *, now: int, window: int) -> bool:
        """True if every first-observed time is recent and within one hour of the others."""
        if len(snapshot) <= CORRUPTION_MIN_FOLLOWERS:
            return False
        times = snapshot.followers.values()
        newest, oldest = max(times), min(times)
        return newest - oldest < CORRUPTION_MAX_SPREAD and newest > now - window
