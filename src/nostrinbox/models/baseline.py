"""Follower baseline snapshot and diff result.

The snapshot is the persisted record of every follower ever observed,
keyed by pubkey with the local wall-clock time of first observation.
It is serialized as JSON::

    {"version": 1, "created": 1700000000, "lastUpdated": 1700003600,
     "followers": {"<pubkey>": 1700000000, ...}}

See Also:
    [FollowerBaseline][nostrinbox.services.notifications.baseline.FollowerBaseline]:
        The state machine that reads, diffs and writes snapshots.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import is_hex_id, validate_timestamp


if TYPE_CHECKING:
    from collections.abc import Mapping


BASELINE_VERSION = 1


@dataclass(frozen=True, slots=True)
class FollowerBaselineSnapshot:
    """Immutable follower baseline.

    Attributes:
        followers: Pubkey to first-observed unix time.
        created_at: When the baseline was first established.
        last_updated: When the baseline was last written.
        version: Payload schema version.
    """

    followers: Mapping[str, int] = field(default_factory=dict)
    created_at: int = 0
    last_updated: int = 0
    version: int = BASELINE_VERSION

    def __post_init__(self) -> None:
        validate_timestamp(self.created_at, "created_at")
        validate_timestamp(self.last_updated, "last_updated")
        cleaned: dict[str, int] = {}
        for pubkey, first_seen in self.followers.items():
            if not is_hex_id(pubkey):
                raise ValueError(f"invalid follower pubkey: {pubkey!r}")
            validate_timestamp(first_seen, "first_seen")
            cleaned[pubkey] = first_seen
        object.__setattr__(self, "followers", MappingProxyType(cleaned))

    @property
    def known_followers(self) -> frozenset[str]:
        return frozenset(self.followers)

    def __contains__(self, pubkey: object) -> bool:
        return pubkey in self.followers

    def __len__(self) -> int:
        return len(self.followers)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "created": self.created_at,
            "lastUpdated": self.last_updated,
            "followers": dict(self.followers),
        }

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> FollowerBaselineSnapshot:
        """Validate and load a stored payload.

        Raises:
            ValueError: If the payload structure is invalid.
        """
        if not isinstance(data, dict):
            raise ValueError("baseline payload must be an object")
        version = data.get("version")
        followers = data.get("followers")
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError("baseline version must be an integer")
        if not isinstance(followers, dict):
            raise ValueError("baseline followers must be an object")
        try:
            return cls(
                followers=followers,
                created_at=int(data.get("created", 0)),
                last_updated=int(data.get("lastUpdated", 0)),
                version=version,
            )
        except TypeError as e:
            raise ValueError(f"invalid baseline payload: {e}") from e

    @classmethod
    def from_bytes(cls, raw: bytes) -> FollowerBaselineSnapshot:
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"baseline payload is not valid JSON: {e}") from e
        return cls.from_dict(data)


@dataclass(frozen=True, slots=True)
class FollowerDiff:
    """Outcome of comparing an observed follower set against the baseline.

    Attributes:
        new_followers: Pubkeys seen for the first time this run, with
            their discovery time.
        recent_followers: Previously known pubkeys whose first-observed
            time is still inside the trailing window.
        first_run: True when this run established the baseline.
    """

    new_followers: tuple[tuple[str, int], ...] = ()
    recent_followers: tuple[tuple[str, int], ...] = ()
    first_run: bool = False

    @property
    def notable(self) -> tuple[tuple[str, int], ...]:
        """New and recent followers, newest discovery first."""
        return tuple(
            sorted(
                (*self.new_followers, *self.recent_followers),
                key=lambda item: (-item[1], item[0]),
            )
        )

    def __len__(self) -> int:
        return len(self.new_followers) + len(self.recent_followers)
