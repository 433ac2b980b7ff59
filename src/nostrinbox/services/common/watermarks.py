"""Durable read watermarks.

A watermark is the newest timestamp the user has acknowledged in one
scope: a direct-message thread (``dm:<peer>``) or the notification feed
(``notifications``). Items newer than the watermark count as unread.
Watermarks only ever move forward and survive restarts through the
injected [KeyValueStore][nostrinbox.core.storage.KeyValueStore].
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from nostrinbox.core.storage import KeyValueStore


logger = logging.getLogger(__name__)

KEY_PREFIX = "watermark:"
NOTIFICATIONS_SCOPE = "notifications"


def dm_scope(peer: str) -> str:
    return f"dm:{peer}"


class WatermarkStore:
    """Monotonic per-scope timestamps with a write-through cache.

    [peek()][nostrinbox.services.common.watermarks.WatermarkStore.peek] is
    synchronous and reads the cache only; call
    [load()][nostrinbox.services.common.watermarks.WatermarkStore.load]
    first for scopes that may have been persisted by an earlier run.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._cache: dict[str, int] = {}

    async def load(self, scopes: Iterable[str]) -> None:
        """Populate the cache for *scopes* not yet loaded."""
        for scope in scopes:
            if scope not in self._cache:
                self._cache[scope] = await self._read(scope)

    async def get(self, scope: str) -> int:
        await self.load((scope,))
        return self._cache[scope]

    def peek(self, scope: str) -> int:
        return self._cache.get(scope, 0)

    async def advance(self, scope: str, timestamp: int) -> int:
        """Move the watermark forward to *timestamp* and persist it.

        Returns:
            The watermark after the call. Older timestamps leave it unchanged.
        """
        current = await self.get(scope)
        if timestamp <= current:
            return current
        self._cache[scope] = timestamp
        await self._store.set(KEY_PREFIX + scope, str(timestamp).encode("ascii"))
        logger.debug("watermark_advanced scope=%s value=%d", scope, timestamp)
        return timestamp

    async def _read(self, scope: str) -> int:
        raw = await self._store.get(KEY_PREFIX + scope)
        if raw is None:
            return 0
        try:
            value = int(raw.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("watermark_invalid scope=%s", scope)
            return 0
        return max(value, 0)
