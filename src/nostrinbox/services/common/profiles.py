"""Kind 0 profile lookup with an owned cache."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nostrinbox.models.constants import EventKind
from nostrinbox.models.filter import EventFilter
from nostrinbox.models.profile import Profile


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .fanout import RelayFanout


logger = logging.getLogger(__name__)


class ProfileCache:
    """Resolves pubkeys to [Profile][nostrinbox.models.profile.Profile].

    Only profiles actually found on relays are cached; unknown pubkeys get
    a placeholder and are retried on the next fetch.

    Args:
        fanout: Relay fan-out used for kind 0 queries.
        batch_size: Maximum authors per query filter.
    """

    def __init__(self, fanout: RelayFanout, *, batch_size: int = 100) -> None:
        self._fanout = fanout
        self._batch_size = batch_size
        self._profiles: dict[str, Profile] = {}

    def get(self, pubkey: str) -> Profile | None:
        return self._profiles.get(pubkey)

    def __contains__(self, pubkey: object) -> bool:
        return pubkey in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)

    async def fetch(
        self,
        pubkeys: Iterable[str],
        relays: Sequence[str],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> dict[str, Profile]:
        """Return a profile for every pubkey, querying relays for unknown ones.

        The newest kind 0 event per author wins.
        """
        wanted = list(dict.fromkeys(pubkeys))
        missing = [pk for pk in wanted if pk not in self._profiles]
        if missing:
            filters = [
                EventFilter(
                    kinds=(EventKind.METADATA,),
                    authors=tuple(missing[i : i + self._batch_size]),
                    limit=len(missing[i : i + self._batch_size]),
                )
                for i in range(0, len(missing), self._batch_size)
            ]
            events = await self._fanout.query(relays, filters, timeout)
            requested = set(missing)
            newest: dict[str, tuple[int, str]] = {}
            for event in events:
                if event.event_kind is not EventKind.METADATA or event.pubkey not in requested:
                    continue
                key = (event.created_at, event.id)
                if event.pubkey in newest and newest[event.pubkey] >= key:
                    continue
                newest[event.pubkey] = key
                self._profiles[event.pubkey] = Profile.from_event(event)
            logger.debug("profiles_fetched requested=%d found=%d", len(missing), len(newest))
        return {pk: self._profiles.get(pk) or Profile.placeholder(pk) for pk in wanted}
