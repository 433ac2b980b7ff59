"""Unit tests for models.profile module."""

import json

import pytest

from fixtures.nostr import BASE_TIME, BOB, make_event
from nostrinbox.models.constants import EventKind
from nostrinbox.models.event import Event
from nostrinbox.models.profile import UNKNOWN_NAME, Profile


def _metadata(content: str) -> Event:
    return make_event(kind=EventKind.METADATA, pubkey=BOB, content=content, created_at=BASE_TIME)


class TestProfile:
    """Profile parsing from kind 0 events."""

    def test_placeholder(self) -> None:
        profile = Profile.placeholder(BOB)

        assert profile.name == UNKNOWN_NAME == "Unknown"
        assert profile.picture is None

    def test_full_metadata(self) -> None:
        content = json.dumps(
            {
                "name": " bob ",
                "display_name": "Bob B.",
                "picture": "https://example.com/bob.png",
                "about": "hi",
                "nip05": "bob@example.com",
            }
        )

        profile = Profile.from_event(_metadata(content))

        assert profile.name == "bob"
        assert profile.display_name == "Bob B."
        assert profile.picture == "https://example.com/bob.png"
        assert profile.nip05 == "bob@example.com"
        assert profile.created_at == BASE_TIME

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            ({"display_name": "Bobby"}, "Bobby"),
            ({"displayName": "Bobby"}, "Bobby"),
            ({"name": "   "}, UNKNOWN_NAME),
            ({"name": 42}, UNKNOWN_NAME),
        ],
    )
    def test_name_fallbacks(self, data: dict, expected: str) -> None:
        assert Profile.from_event(_metadata(json.dumps(data))).name == expected

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", ""])
    def test_malformed_content(self, content: str) -> None:
        profile = Profile.from_event(_metadata(content))

        assert profile.name == UNKNOWN_NAME
        assert profile.pubkey == BOB

    def test_invalid_pubkey(self) -> None:
        with pytest.raises(ValueError):
            Profile(pubkey="bob")
