"""Kind 0 profile metadata."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._validation import validate_hex_id


if TYPE_CHECKING:
    from .event import Event


logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


def _str_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True, slots=True)
class Profile:
    """Display metadata published by a pubkey.

    ``name`` always has a value: the ``name`` field, then
    ``display_name``, then ``"Unknown"``.
    """

    pubkey: str
    name: str = UNKNOWN_NAME
    display_name: str | None = None
    picture: str | None = None
    about: str | None = None
    nip05: str | None = None
    created_at: int = 0

    def __post_init__(self) -> None:
        validate_hex_id(self.pubkey, "pubkey")

    @classmethod
    def placeholder(cls, pubkey: str) -> Profile:
        """Profile for a pubkey whose metadata could not be found."""
        return cls(pubkey=pubkey)

    @classmethod
    def from_event(cls, event: Event) -> Profile:
        """Parse a kind 0 event; malformed content yields a placeholder."""
        try:
            data = json.loads(event.content)
        except (ValueError, TypeError):
            logger.debug("profile_parse_failed pubkey=%s", event.pubkey)
            return cls(pubkey=event.pubkey, created_at=event.created_at)
        if not isinstance(data, dict):
            return cls(pubkey=event.pubkey, created_at=event.created_at)

        display_name = _str_field(data, "display_name") or _str_field(data, "displayName")
        return cls(
            pubkey=event.pubkey,
            name=_str_field(data, "name") or display_name or UNKNOWN_NAME,
            display_name=display_name,
            picture=_str_field(data, "picture"),
            about=_str_field(data, "about"),
            nip05=_str_field(data, "nip05"),
            created_at=event.created_at,
        )
