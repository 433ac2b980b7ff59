"""Per-operation event deduplication.

Relays replicate the same signed event, so a fan-out sees most ids more
than once. An [EventDeduper][nostrinbox.services.common.dedup.EventDeduper]
lives exactly as long as one query or subscription and is then discarded;
there is no process-wide cache.
"""

from __future__ import annotations

from nostrinbox.models.event import Event


class EventDeduper:
    """Admits each event id once."""

    __slots__ = ("_ids",)

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def admit(self, event: Event | str) -> bool:
        """Return True the first time *event* (or its id) is seen."""
        event_id = event.id if isinstance(event, Event) else event
        if event_id in self._ids:
            return False
        self._ids.add(event_id)
        return True

    @property
    def seen(self) -> int:
        return len(self._ids)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
