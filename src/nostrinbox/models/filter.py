"""Relay subscription filter model (NIP-01 ``REQ`` filter).

An [EventFilter][nostrinbox.models.filter.EventFilter] is transport
agnostic: the concrete relay client converts it into whatever its
library expects, and in-memory fakes evaluate it with
[matches()][nostrinbox.models.filter.EventFilter.matches].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._validation import validate_hex_id, validate_timestamp


if TYPE_CHECKING:
    from .event import Event


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Immutable NIP-01 filter.

    Empty tuples mean "no constraint" for that field. ``tags`` maps a
    single-letter tag name (without the ``#``) to the accepted values.

    Attributes:
        ids: Accepted event ids.
        kinds: Accepted kinds.
        authors: Accepted author public keys.
        tags: Single-letter tag constraints, e.g. ``{"p": ("<hex>",)}``.
        since: Inclusive lower ``created_at`` bound.
        until: Inclusive upper ``created_at`` bound.
        limit: Maximum number of stored events a relay should return.
    """

    ids: tuple[str, ...] = ()
    kinds: tuple[int, ...] = ()
    authors: tuple[str, ...] = ()
    tags: dict[str, tuple[str, ...]] = field(default_factory=dict, hash=False)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "ids", tuple(self.ids))
        object.__setattr__(self, "kinds", tuple(self.kinds))
        object.__setattr__(self, "authors", tuple(self.authors))
        for value in (*self.ids, *self.authors):
            validate_hex_id(value, "filter id/author")
        normalized: dict[str, tuple[str, ...]] = {}
        for name, values in self.tags.items():
            if len(name) != 1 or not name.isalpha():
                raise ValueError(f"tag filter name must be a single letter, got {name!r}")
            normalized[name] = tuple(values)
        object.__setattr__(self, "tags", normalized)
        for name in ("since", "until", "limit"):
            value = getattr(self, name)
            if value is not None:
                validate_timestamp(value, name)

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every constraint except ``limit``."""
        if self.ids and event.id not in self.ids:
            return False
        if self.kinds and event.kind not in self.kinds:
            return False
        if self.authors and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if values and not set(values).intersection(event.tag_values(name)):
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON filter object (empty fields omitted)."""
        data: dict[str, Any] = {}
        if self.ids:
            data["ids"] = list(self.ids)
        if self.kinds:
            data["kinds"] = list(self.kinds)
        if self.authors:
            data["authors"] = list(self.authors)
        for name, values in self.tags.items():
            if values:
                data[f"#{name}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data
