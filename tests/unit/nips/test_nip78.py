"""Unit tests for nips.nip78 module."""

from fixtures.nostr import ALICE, FakeKeyStore, make_event
from nostrinbox.models.baseline import FollowerBaselineSnapshot
from nostrinbox.models.constants import EventKind
from nostrinbox.nips.nip78 import (
    BASELINE_D_TAG,
    baseline_filter,
    build_baseline_event,
    latest_baseline,
    parse_baseline_event,
)


def _snapshot(**followers: int) -> FollowerBaselineSnapshot:
    return FollowerBaselineSnapshot(
        followers={pk * 32: ts for pk, ts in followers.items()},
        created_at=100,
        last_updated=200,
    )


class TestBaselineFilter:
    """Tests for baseline_filter."""

    def test_selects_own_app_data(self) -> None:
        f = baseline_filter(ALICE)

        assert f.kinds == (EventKind.APP_DATA,)
        assert f.authors == (ALICE,)
        assert f.tags == {"d": (BASELINE_D_TAG,)}
        assert f.limit == 1


class TestBaselineEvents:
    """Tests for building and parsing mirrored baselines."""

    async def test_build_then_parse(self, alice_keys: FakeKeyStore) -> None:
        snapshot = _snapshot(b2=10, c3=20)

        event = await build_baseline_event(alice_keys, snapshot)

        assert event.kind == EventKind.APP_DATA
        assert event.first_tag("d") == BASELINE_D_TAG
        assert "b2" * 32 not in event.content
        assert await parse_baseline_event(alice_keys, event) == snapshot

    async def test_foreign_author_ignored(
        self, alice_keys: FakeKeyStore, bob_keys: FakeKeyStore
    ) -> None:
        event = await build_baseline_event(bob_keys, _snapshot(c3=1))

        assert await parse_baseline_event(alice_keys, event) is None

    async def test_wrong_d_tag_ignored(self, alice_keys: FakeKeyStore) -> None:
        content = await alice_keys.nip04_encrypt(ALICE, "{}")
        event = make_event(
            kind=EventKind.APP_DATA, pubkey=ALICE, content=content, tags=[["d", "other"]]
        )

        assert await parse_baseline_event(alice_keys, event) is None

    async def test_undecryptable_returns_none(self, alice_keys: FakeKeyStore) -> None:
        event = make_event(
            kind=EventKind.APP_DATA, pubkey=ALICE, content="junk", tags=[["d", BASELINE_D_TAG]]
        )

        assert await parse_baseline_event(alice_keys, event) is None

    async def test_invalid_payload_returns_none(self, alice_keys: FakeKeyStore) -> None:
        content = await alice_keys.nip04_encrypt(ALICE, "not json")
        event = make_event(
            kind=EventKind.APP_DATA, pubkey=ALICE, content=content, tags=[["d", BASELINE_D_TAG]]
        )

        assert await parse_baseline_event(alice_keys, event) is None

    async def test_latest_prefers_newest_readable(self, alice_keys: FakeKeyStore) -> None:
        alice_keys.now = 1_000
        older = await build_baseline_event(alice_keys, _snapshot(b2=1))
        alice_keys.now = 2_000
        newer = await build_baseline_event(alice_keys, _snapshot(c3=2))
        broken = make_event(
            kind=EventKind.APP_DATA,
            pubkey=ALICE,
            content="junk",
            tags=[["d", BASELINE_D_TAG]],
            created_at=3_000,
        )

        result = await latest_baseline(alice_keys, [older, broken, newer])

        assert result == _snapshot(c3=2)

    async def test_latest_none_when_empty(self, alice_keys: FakeKeyStore) -> None:
        assert await latest_baseline(alice_keys, []) is None
