"""Shared fixtures for services.notifications test package."""

import pytest

from fixtures.nostr import ALICE, RELAY_A, RELAY_B, FakeKeyStore, FakeRelayNetwork
from nostrinbox.core.storage import MemoryStore, StorageConfig
from nostrinbox.services.common.configs import FanoutConfig, RelaysConfig
from nostrinbox.services.common.watermarks import WatermarkStore
from nostrinbox.services.notifications import (
    FollowerBaseline,
    NotificationAggregator,
    NotificationsConfig,
    Notifier,
)


@pytest.fixture
def baseline(memory_store: MemoryStore) -> FollowerBaseline:
    return FollowerBaseline(memory_store, ALICE, window_days=7)


@pytest.fixture
def aggregator(memory_store: MemoryStore, baseline: FollowerBaseline) -> NotificationAggregator:
    return NotificationAggregator(
        ALICE, baseline, WatermarkStore(memory_store), excerpt_length=20, max_items=50
    )


@pytest.fixture
def notifications_config() -> NotificationsConfig:
    return NotificationsConfig(
        relays=RelaysConfig(read=[RELAY_A, RELAY_B], write=[RELAY_A, RELAY_B]),
        fanout=FanoutConfig(query_timeout=0.5, backlog_timeout=0.5, publish_timeout=0.5),
        storage=StorageConfig(path=None),
    )


@pytest.fixture
def notifier(
    notifications_config: NotificationsConfig,
    network: FakeRelayNetwork,
    alice_keys: FakeKeyStore,
    memory_store: MemoryStore,
) -> Notifier:
    """Notifier for ALICE on the in-memory relay network."""
    return Notifier(
        store=memory_store,
        config=notifications_config,
        relay_client=network,
        key_store=alice_keys,
    )
