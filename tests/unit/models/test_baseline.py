"""Unit tests for models.baseline module."""

import json

import pytest

from fixtures.nostr import BASE_TIME, BOB, CAROL, DAVE
from nostrinbox.models.baseline import BASELINE_VERSION, FollowerBaselineSnapshot, FollowerDiff


class TestSnapshot:
    """FollowerBaselineSnapshot construction and serialization."""

    def test_followers_read_only(self) -> None:
        snapshot = FollowerBaselineSnapshot(followers={BOB: BASE_TIME})

        with pytest.raises(TypeError):
            snapshot.followers[CAROL] = BASE_TIME  # type: ignore[index]
        assert BOB in snapshot
        assert snapshot.known_followers == frozenset({BOB})

    def test_invalid_pubkey(self) -> None:
        with pytest.raises(ValueError, match="invalid follower pubkey"):
            FollowerBaselineSnapshot(followers={"bob": BASE_TIME})

    def test_wire_format(self) -> None:
        snapshot = FollowerBaselineSnapshot(
            followers={BOB: BASE_TIME}, created_at=BASE_TIME, last_updated=BASE_TIME + 60
        )

        assert json.loads(snapshot.to_bytes()) == {
            "version": BASELINE_VERSION,
            "created": BASE_TIME,
            "lastUpdated": BASE_TIME + 60,
            "followers": {BOB: BASE_TIME},
        }

    def test_from_bytes(self) -> None:
        raw = json.dumps(
            {"version": 1, "created": 5, "lastUpdated": 9, "followers": {CAROL: 7}}
        ).encode()

        snapshot = FollowerBaselineSnapshot.from_bytes(raw)

        assert dict(snapshot.followers) == {CAROL: 7}
        assert snapshot.created_at == 5
        assert snapshot.last_updated == 9

    @pytest.mark.parametrize(
        "raw",
        [
            b"\xff\xfe",
            b"not json",
            b"[]",
            b'{"followers": {}}',
            b'{"version": true, "followers": {}}',
            b'{"version": 1, "followers": []}',
            b'{"version": 1, "followers": {"bob": 1}}',
        ],
    )
    def test_invalid_payloads(self, raw: bytes) -> None:
        with pytest.raises(ValueError):
            FollowerBaselineSnapshot.from_bytes(raw)


class TestDiff:
    """FollowerDiff ordering."""

    def test_notable_newest_first(self) -> None:
        diff = FollowerDiff(
            new_followers=((DAVE, BASE_TIME + 100),),
            recent_followers=((BOB, BASE_TIME), (CAROL, BASE_TIME + 50)),
        )

        assert diff.notable == (
            (DAVE, BASE_TIME + 100),
            (CAROL, BASE_TIME + 50),
            (BOB, BASE_TIME),
        )
        assert len(diff) == 3

    def test_first_run_is_empty(self) -> None:
        diff = FollowerDiff(first_run=True)

        assert diff.notable == ()
        assert len(diff) == 0
