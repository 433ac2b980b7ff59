"""
Unit tests for utils.protocol module.

Tests:
- to_nostr_filter() - EventFilter to nostr-sdk Filter conversion
- create_client() - client factory without proxy
- _NotificationBridge - subscription id routing, EOSE and CLOSED handling
- NostrRelayClient.publish() - per-relay outcomes with mocked connections
- NostrRelayClient connection pool - independent per-relay connects
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from nostr_sdk import Client, EventBuilder, Keys

from nostrinbox.models.event import Event
from nostrinbox.models.filter import EventFilter
from nostrinbox.services.common.fanout import RelayFanout
from nostrinbox.utils.protocol import (
    NostrRelayClient,
    PublishOutcome,
    RelayClient,
    _NotificationBridge,
    create_client,
    to_nostr_filter,
)


RELAY_A = "wss://relay-a.example"
RELAY_B = "wss://relay-b.example"


def _signed_event(content: str = "hello") -> Event:
    return Event.from_nostr(EventBuilder.text_note(content).sign_with_keys(Keys.generate()))


def _relay_message(payload: list) -> MagicMock:
    msg = MagicMock()
    msg.as_json.return_value = json.dumps(payload)
    return msg


class _RecordingHandler:
    def __init__(self) -> None:
        self.events: list[Event] = []
        self.eose = 0
        self.closed: list[str] = []

    async def on_event(self, event: Event) -> None:
        self.events.append(event)

    async def on_eose(self) -> None:
        self.eose += 1

    async def on_closed(self, reason: str) -> None:
        self.closed.append(reason)


# =============================================================================
# Filter conversion
# =============================================================================


class TestToNostrFilter:
    """to_nostr_filter() preserves every NIP-01 field."""

    def test_empty_filter(self):
        assert json.loads(to_nostr_filter(EventFilter()).as_json()) == {}

    def test_full_filter_matches_wire_format(self):
        author = Keys.generate().public_key().to_hex()
        event_id = _signed_event().id
        event_filter = EventFilter(
            ids=(event_id,),
            kinds=(4, 1059),
            authors=(author,),
            tags={"p": (author,)},
            since=1_700_000_000,
            until=1_700_086_400,
            limit=50,
        )
        converted = json.loads(to_nostr_filter(event_filter).as_json())
        expected = event_filter.to_dict()
        assert converted["ids"] == expected["ids"]
        assert sorted(converted["kinds"]) == [4, 1059]
        assert converted["authors"] == [author]
        assert converted["#p"] == [author]
        assert converted["since"] == 1_700_000_000
        assert converted["until"] == 1_700_086_400
        assert converted["limit"] == 50

    def test_uppercase_tag(self):
        payer = Keys.generate().public_key().to_hex()
        converted = json.loads(to_nostr_filter(EventFilter(tags={"P": (payer,)})).as_json())
        assert converted["#P"] == [payer]


# =============================================================================
# Client factory
# =============================================================================


class TestCreateClient:
    """create_client() without network access."""

    async def test_read_only_client(self):
        assert isinstance(await create_client(), Client)

    async def test_signing_client(self):
        assert isinstance(await create_client(Keys.generate()), Client)


# =============================================================================
# Subscription bridge
# =============================================================================


class TestNotificationBridge:
    """_NotificationBridge routing of nostr-sdk notifications."""

    async def test_forwards_events_of_own_subscription(self):
        handler = _RecordingHandler()
        bridge = _NotificationBridge(RELAY_A, {"sub1"}, handler)
        raw = EventBuilder.text_note("hi").sign_with_keys(Keys.generate())
        await bridge.handle(MagicMock(), "sub1", raw)
        assert [e.content for e in handler.events] == ["hi"]

    async def test_ignores_foreign_subscription(self):
        handler = _RecordingHandler()
        bridge = _NotificationBridge(RELAY_A, {"sub1"}, handler)
        raw = EventBuilder.text_note("hi").sign_with_keys(Keys.generate())
        await bridge.handle(MagicMock(), "other", raw)
        assert handler.events == []

    async def test_eose_after_every_subscription(self):
        handler = _RecordingHandler()
        bridge = _NotificationBridge(RELAY_A, {"sub1", "sub2"}, handler)
        await bridge.handle_msg(MagicMock(), _relay_message(["EOSE", "sub1"]))
        assert handler.eose == 0
        await bridge.handle_msg(MagicMock(), _relay_message(["EOSE", "sub1"]))
        assert handler.eose == 0
        await bridge.handle_msg(MagicMock(), _relay_message(["EOSE", "sub2"]))
        assert handler.eose == 1

    async def test_closed_stops_forwarding(self):
        handler = _RecordingHandler()
        bridge = _NotificationBridge(RELAY_A, {"sub1"}, handler)
        await bridge.handle_msg(MagicMock(), _relay_message(["CLOSED", "sub1", "auth-required"]))
        assert handler.closed == ["auth-required"]
        raw = EventBuilder.text_note("late").sign_with_keys(Keys.generate())
        await bridge.handle(MagicMock(), "sub1", raw)
        assert handler.events == []

    async def test_ignores_unrelated_messages(self):
        handler = _RecordingHandler()
        bridge = _NotificationBridge(RELAY_A, {"sub1"}, handler)
        await bridge.handle_msg(MagicMock(), _relay_message(["NOTICE"]))
        await bridge.handle_msg(MagicMock(), _relay_message(["EOSE", "other"]))
        await bridge.handle_msg(MagicMock(), _relay_message(["OK", "abc", True, ""]))
        assert handler.eose == 0
        assert handler.closed == []


# =============================================================================
# Publishing
# =============================================================================


class TestPublish:
    """NostrRelayClient.publish() with mocked per-relay connections."""

    def test_satisfies_protocol(self):
        assert isinstance(NostrRelayClient(), RelayClient)

    def test_outcome_defaults(self):
        outcome = PublishOutcome(RELAY_A, ok=True)
        assert outcome.message == ""
        assert outcome.relay == RELAY_A

    async def test_outcome_per_relay(self, monkeypatch: pytest.MonkeyPatch):
        accepted = MagicMock()
        accepted.send_event = AsyncMock(return_value=MagicMock(success=[RELAY_A], failed={}))
        rejected = MagicMock()
        rejected.send_event = AsyncMock(
            return_value=MagicMock(success=[], failed={RELAY_B: "blocked: spam"})
        )
        clients = {RELAY_A: accepted, RELAY_B: rejected}

        client = NostrRelayClient()
        monkeypatch.setattr(client, "_client_for", AsyncMock(side_effect=clients.__getitem__))
        outcomes = await client.publish([RELAY_A, RELAY_B], _signed_event())

        assert outcomes == [
            PublishOutcome(RELAY_A, ok=True),
            PublishOutcome(RELAY_B, ok=False, message="blocked: spam"),
        ]

    async def test_connection_failure_is_an_outcome(self, monkeypatch: pytest.MonkeyPatch):
        client = NostrRelayClient()
        monkeypatch.setattr(
            client, "_client_for", AsyncMock(side_effect=OSError("connection refused"))
        )
        outcomes = await client.publish([RELAY_A], _signed_event())
        assert outcomes == [PublishOutcome(RELAY_A, ok=False, message="connection refused")]

    async def test_close_without_connections(self):
        async with NostrRelayClient() as client:
            pass
        await client.close()


# =============================================================================
# Connection pool
# =============================================================================


RELAY_SLOW = "wss://relay-slow.example"


def _fake_client(*contents: str) -> MagicMock:
    raw = [EventBuilder.text_note(c).sign_with_keys(Keys.generate()) for c in contents]
    client = MagicMock()
    client.fetch_events = AsyncMock(return_value=MagicMock(to_vec=MagicMock(return_value=raw)))
    client.shutdown = AsyncMock()
    return client


class TestConnectionPool:
    """NostrRelayClient connects each relay independently."""

    async def test_unreachable_relay_does_not_block_others(
        self, monkeypatch: pytest.MonkeyPatch
    ):
        clients = {RELAY_A: _fake_client("from a"), RELAY_B: _fake_client("from b")}

        async def connect(relay: str) -> MagicMock:
            if relay == RELAY_SLOW:
                await asyncio.sleep(5)
            return clients[relay]

        client = NostrRelayClient()
        monkeypatch.setattr(client, "_connect", connect)
        fanout = RelayFanout(client, query_timeout=0.5)
        try:
            events = await fanout.query([RELAY_SLOW, RELAY_A, RELAY_B], [EventFilter(kinds=(1,))])
        finally:
            await client.close()

        assert sorted(e.content for e in events) == ["from a", "from b"]

    async def test_connection_shared_between_callers(self, monkeypatch: pytest.MonkeyPatch):
        relay_client = _fake_client("hello")
        connect = AsyncMock(return_value=relay_client)
        client = NostrRelayClient()
        monkeypatch.setattr(client, "_connect", connect)

        await asyncio.gather(
            client.query([RELAY_A], [EventFilter(kinds=(1,))], 1.0),
            client.query([RELAY_A], [EventFilter(kinds=(1,))], 1.0),
        )
        await client.close()

        connect.assert_awaited_once_with(RELAY_A)
        relay_client.shutdown.assert_awaited_once()

    async def test_failed_connection_is_retried(self, monkeypatch: pytest.MonkeyPatch):
        connect = AsyncMock(side_effect=[OSError("refused"), _fake_client("second try")])
        client = NostrRelayClient()
        monkeypatch.setattr(client, "_connect", connect)

        with pytest.raises(OSError, match="refused"):
            await client.query([RELAY_A], [EventFilter(kinds=(1,))], 1.0)
        events = await client.query([RELAY_A], [EventFilter(kinds=(1,))], 1.0)
        await client.close()

        assert [e.content for e in events] == ["second try"]
        assert connect.await_count == 2

    async def test_filters_fetched_concurrently(self, monkeypatch: pytest.MonkeyPatch):
        raw = EventBuilder.text_note("x").sign_with_keys(Keys.generate())
        started = 0
        all_started = asyncio.Event()

        async def fetch_events(_filter, _timeout):
            nonlocal started
            started += 1
            if started == 2:
                all_started.set()
            # Only completes if both fetches are in flight together
            await all_started.wait()
            return MagicMock(to_vec=MagicMock(return_value=[raw]))

        relay_client = MagicMock()
        relay_client.fetch_events = fetch_events
        relay_client.shutdown = AsyncMock()
        client = NostrRelayClient()
        monkeypatch.setattr(client, "_connect", AsyncMock(return_value=relay_client))

        events = await asyncio.wait_for(
            client.query(
                [RELAY_A], [EventFilter(kinds=(1,)), EventFilter(kinds=(7,))], 1.0
            ),
            timeout=2.0,
        )
        await client.close()

        assert len(events) == 2
