"""Shared fixtures for services.messages test package."""

import pytest

from fixtures.nostr import RELAY_A, RELAY_B, FakeKeyStore, FakeRelayNetwork
from nostrinbox.core.storage import MemoryStore, StorageConfig
from nostrinbox.services.common.configs import FanoutConfig, RelaysConfig
from nostrinbox.services.messages import MessagesConfig, Messenger


@pytest.fixture
def messages_config() -> MessagesConfig:
    return MessagesConfig(
        relays=RelaysConfig(read=[RELAY_A, RELAY_B], write=[RELAY_A, RELAY_B]),
        fanout=FanoutConfig(query_timeout=0.5, backlog_timeout=0.5, publish_timeout=0.5),
        storage=StorageConfig(path=None),
    )


@pytest.fixture
def messenger(
    messages_config: MessagesConfig,
    network: FakeRelayNetwork,
    alice_keys: FakeKeyStore,
    memory_store: MemoryStore,
) -> Messenger:
    """Messenger for ALICE on the in-memory relay network."""
    return Messenger(
        store=memory_store,
        config=messages_config,
        relay_client=network,
        key_store=alice_keys,
    )
