"""Unit tests for services.notifications.service module."""

import json

import pytest

from fixtures.nostr import (
    ALICE,
    BASE_TIME,
    BOB,
    CAROL,
    DAVE,
    RELAY_A,
    RELAY_B,
    FakeKeyStore,
    FakeRelayNetwork,
    make_event,
    note_id,
)
from nostrinbox.core.exceptions import MissingIdentityError, NoRelaysError
from nostrinbox.core.storage import MemoryStore, StorageConfig
from nostrinbox.models.constants import EventKind, NotificationType
from nostrinbox.models.event import Event
from nostrinbox.nips.nip78 import BASELINE_D_TAG
from nostrinbox.services.common.configs import RelaysConfig
from nostrinbox.services.notifications import BaselineState, NotificationsConfig, Notifier


def _note(content: str) -> Event:
    return make_event(kind=EventKind.TEXT_NOTE, pubkey=ALICE, content=content)


def _contacts(author: str, created_at: int = BASE_TIME) -> Event:
    return make_event(
        kind=EventKind.CONTACTS, pubkey=author, tags=[["p", ALICE]], created_at=created_at
    )


class _BrokenCipher(FakeKeyStore):
    async def nip04_encrypt(self, peer: str, plaintext: str) -> str:
        raise RuntimeError("cipher unavailable")


def _mirrored(network: FakeRelayNetwork) -> list[Event]:
    return [
        event
        for _relay, event in network.published
        if event.kind == EventKind.APP_DATA and event.first_tag("d") == BASELINE_D_TAG
    ]


# ============================================================================
# Initialization Tests
# ============================================================================


class TestNotifierInit:
    """Tests for Notifier initialization."""

    def test_service_name_and_config_class(self) -> None:
        assert Notifier.SERVICE_NAME == "notifier"
        assert Notifier.CONFIG_CLASS is NotificationsConfig

    def test_empty_before_refresh(self, notifier: Notifier) -> None:
        assert notifier.items == ()
        assert notifier.unread_count == 0
        assert notifier.filter() == []

    async def test_without_key(
        self, network: FakeRelayNetwork, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("PRIVATE_KEY", raising=False)
        config = NotificationsConfig(
            relays=RelaysConfig(read=[RELAY_A], write=[RELAY_A]),
            storage=StorageConfig(path=None),
        )
        notifier = Notifier(config=config, relay_client=network)

        assert notifier.items == ()
        with pytest.raises(MissingIdentityError):
            await notifier.refresh()
        with pytest.raises(MissingIdentityError):
            await notifier.mark_viewed()
        assert network.queries == []

    async def test_no_relays(self, network: FakeRelayNetwork, alice_keys: FakeKeyStore) -> None:
        config = NotificationsConfig(relays=RelaysConfig(read=[]), storage=StorageConfig(path=None))
        notifier = Notifier(config=config, relay_client=network, key_store=alice_keys)

        with pytest.raises(NoRelaysError):
            await notifier.refresh()


# ============================================================================
# Refresh Tests
# ============================================================================


class TestNotifierRefresh:
    """Tests for Notifier.refresh."""

    async def test_builds_enriched_feed(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        target = _note("the note everybody liked")
        reply = make_event(
            pubkey=BOB,
            content="agreed",
            tags=[["e", target.id], ["p", ALICE]],
            created_at=BASE_TIME + 20,
        )
        like = make_event(
            kind=EventKind.REACTION,
            pubkey=CAROL,
            content="+",
            tags=[["e", target.id], ["p", ALICE]],
            created_at=BASE_TIME + 10,
        )
        metadata = make_event(
            kind=EventKind.METADATA, pubkey=BOB, content=json.dumps({"name": "bob"})
        )
        network.add(RELAY_A, target, reply, metadata)
        network.add(RELAY_B, reply, like)

        items = await notifier.refresh()

        assert [i.type for i in items] == [NotificationType.REPLY, NotificationType.LIKE]
        assert items[0].profile is not None
        assert items[0].profile.name == "bob"
        assert items[1].profile is not None
        assert items[1].profile.name == "Unknown"
        assert all(i.target_note == "the note everybody liked" for i in items)
        assert notifier.unread_count == 2

    async def test_missing_target_flagged(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        network.add(
            RELAY_A,
            make_event(
                kind=EventKind.REPOST, pubkey=BOB, tags=[["e", note_id("gone")], ["p", ALICE]]
            ),
        )

        [item] = await notifier.refresh()

        assert item.target_missing is True

    async def test_queries_only_enabled_types(
        self, network: FakeRelayNetwork, alice_keys: FakeKeyStore
    ) -> None:
        config = NotificationsConfig(
            relays=RelaysConfig(read=[RELAY_A], write=[RELAY_A]),
            storage=StorageConfig(path=None),
            types={
                "replies": True,
                "likes": False,
                "reposts": False,
                "zaps": False,
                "tips": False,
                "follows": False,
            },
            fetch_profiles=False,
            fetch_targets=False,
        )
        notifier = Notifier(config=config, relay_client=network, key_store=alice_keys)

        await notifier.refresh()

        [(relay, filters)] = network.queries
        assert relay == RELAY_A
        assert [f.kinds for f in filters] == [(EventKind.TEXT_NOTE,)]

    async def test_failing_relay_tolerated(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        network.failing.add(RELAY_B)
        network.add(
            RELAY_A,
            make_event(kind=EventKind.REPOST, pubkey=BOB, tags=[["e", note_id("x")], ["p", ALICE]]),
        )

        items = await notifier.refresh()

        assert len(items) == 1

    async def test_mark_viewed(self, notifier: Notifier, network: FakeRelayNetwork) -> None:
        network.add(
            RELAY_A,
            make_event(kind=EventKind.REPOST, pubkey=BOB, tags=[["e", note_id("x")], ["p", ALICE]]),
        )
        await notifier.refresh()

        await notifier.mark_viewed(BASE_TIME + 1)

        assert notifier.unread_count == 0
        await notifier.refresh()
        assert notifier.unread_count == 0

    async def test_new_follower_across_refreshes(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        network.add(RELAY_A, _contacts(BOB))
        assert await notifier.refresh(now=BASE_TIME) == []

        network.add(RELAY_A, _contacts(CAROL))
        items = await notifier.refresh(now=BASE_TIME + 60)

        assert [(i.type, i.actor) for i in items] == [(NotificationType.FOLLOW, CAROL)]
        assert notifier.baseline.follower_count == 2

    async def test_first_follower_after_empty_start(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        assert await notifier.refresh(now=BASE_TIME) == []
        assert await notifier.baseline.load() is BaselineState.TRACKING

        network.add(RELAY_A, _contacts(BOB))
        items = await notifier.refresh(now=BASE_TIME + 60)

        assert [(i.type, i.actor) for i in items] == [(NotificationType.FOLLOW, BOB)]

    async def test_unreachable_relays_leave_baseline_unseeded(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        network.add(RELAY_A, _contacts(BOB))
        network.failing.update({RELAY_A, RELAY_B})
        await notifier.refresh(now=BASE_TIME)

        assert await notifier.baseline.load() is BaselineState.UNINITIALIZED

        network.failing.clear()
        assert await notifier.refresh(now=BASE_TIME + 60) == []
        assert notifier.baseline.is_known(BOB)


# ============================================================================
# Baseline Mirror Tests
# ============================================================================


class TestBaselineMirror:
    """Tests for mirroring the follower baseline through relays."""

    @pytest.fixture
    def sync_config(self, notifications_config: NotificationsConfig) -> NotificationsConfig:
        return notifications_config.model_copy(
            update={"baseline_relay_sync": True, "fetch_profiles": False, "fetch_targets": False}
        )

    async def test_disabled_by_default(
        self, notifier: Notifier, network: FakeRelayNetwork
    ) -> None:
        network.add(RELAY_A, _contacts(BOB))

        await notifier.refresh(now=BASE_TIME)

        assert _mirrored(network) == []

    async def test_changed_baseline_pushed_and_pulled(
        self,
        sync_config: NotificationsConfig,
        network: FakeRelayNetwork,
        alice_keys: FakeKeyStore,
    ) -> None:
        network.add(RELAY_A, _contacts(BOB), _contacts(DAVE))
        first = Notifier(
            store=MemoryStore(), config=sync_config, relay_client=network, key_store=alice_keys
        )
        await first.refresh(now=BASE_TIME)

        assert len(_mirrored(network)) == 2

        second = Notifier(
            store=MemoryStore(), config=sync_config, relay_client=network, key_store=alice_keys
        )
        items = await second.refresh(now=BASE_TIME + 60)

        assert items == []
        assert second.baseline.is_known(BOB)
        assert second.baseline.is_known(DAVE)
        assert len(_mirrored(network)) == 2

    async def test_unchanged_baseline_not_pushed(
        self,
        sync_config: NotificationsConfig,
        network: FakeRelayNetwork,
        alice_keys: FakeKeyStore,
        memory_store: MemoryStore,
    ) -> None:
        network.add(RELAY_A, _contacts(BOB))
        notifier = Notifier(
            store=memory_store, config=sync_config, relay_client=network, key_store=alice_keys
        )
        await notifier.refresh(now=BASE_TIME)
        pushed = len(_mirrored(network))

        await notifier.refresh(now=BASE_TIME + 60)

        assert len(_mirrored(network)) == pushed

    async def test_rejected_push_is_not_fatal(
        self,
        sync_config: NotificationsConfig,
        network: FakeRelayNetwork,
        alice_keys: FakeKeyStore,
    ) -> None:
        network.rejecting.update({RELAY_A, RELAY_B})
        network.add(RELAY_A, _contacts(BOB))
        notifier = Notifier(
            store=MemoryStore(), config=sync_config, relay_client=network, key_store=alice_keys
        )

        assert await notifier.refresh(now=BASE_TIME) == []
        assert notifier.baseline.is_known(BOB)

    async def test_push_failure_does_not_abort_refresh(
        self, sync_config: NotificationsConfig, network: FakeRelayNetwork
    ) -> None:
        config = sync_config.model_copy(update={"fetch_profiles": True, "fetch_targets": True})
        target = _note("liked note")
        like = make_event(
            kind=EventKind.REACTION, pubkey=BOB, content="+", tags=[["e", target.id], ["p", ALICE]]
        )
        metadata = make_event(
            kind=EventKind.METADATA, pubkey=BOB, content=json.dumps({"name": "bob"})
        )
        network.add(RELAY_A, target, like, metadata, _contacts(BOB))
        notifier = Notifier(
            store=MemoryStore(), config=config, relay_client=network, key_store=_BrokenCipher()
        )

        [item] = await notifier.refresh(now=BASE_TIME)

        assert item.type is NotificationType.LIKE
        assert item.profile is not None
        assert item.profile.name == "bob"
        assert item.target_note == "liked note"
        assert notifier.baseline.is_known(BOB)
        assert _mirrored(network) == []

    async def test_failed_push_retried_next_refresh(
        self,
        sync_config: NotificationsConfig,
        network: FakeRelayNetwork,
        alice_keys: FakeKeyStore,
    ) -> None:
        network.rejecting.update({RELAY_A, RELAY_B})
        network.add(RELAY_A, _contacts(BOB))
        notifier = Notifier(
            store=MemoryStore(), config=sync_config, relay_client=network, key_store=alice_keys
        )
        await notifier.refresh(now=BASE_TIME)
        assert _mirrored(network) == []

        network.rejecting.clear()
        await notifier.refresh(now=BASE_TIME + 60)

        assert len(_mirrored(network)) == 2
