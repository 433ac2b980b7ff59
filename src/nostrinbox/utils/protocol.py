"""Nostr relay transport built on nostr-sdk.

Defines the relay client contract consumed by the fan-out layer and its
default implementation:

Attributes:
    RelayClient: Protocol with ``query``, ``subscribe`` and ``publish``,
        each addressed to an explicit relay list.
    SubscriptionHandler: Callbacks invoked for streamed events,
        end-of-stored-events and relay-side closure.
    PublishOutcome: Per-relay result of a publish.
    NostrRelayClient: ``nostr_sdk.Client`` backed implementation keeping
        one connected client per relay URL.
    create_client: Client factory with optional SOCKS5 proxy.
    to_nostr_filter: Convert an
        [EventFilter][nostrinbox.models.filter.EventFilter] into a
        ``nostr_sdk.Filter``.

Note:
    Every relay gets its own ``Client`` so responses stay attributable to
    the relay that sent them. Merging and deduplication across relays is
    the job of [RelayFanout][nostrinbox.services.common.fanout.RelayFanout].

Examples:
    ```python
    async with NostrRelayClient(keys=my_keys) as client:
        events = await client.query(["wss://nos.lol"], [EventFilter(kinds=(4,))], 10.0)
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
from datetime import timedelta
from ipaddress import AddressValueError, IPv4Address, IPv6Address
from typing import TYPE_CHECKING, NamedTuple, Protocol, Self, runtime_checkable
from urllib.parse import urlparse

from nostr_sdk import (
    Alphabet,
    Client,
    ClientBuilder,
    ClientOptions,
    Connection,
    ConnectionMode,
    ConnectionTarget,
    EventId,
    Filter,
    HandleNotification,
    Kind,
    NostrSigner,
    PublicKey,
    RelayUrl,
    SingleLetterTag,
    Timestamp,
)

from nostrinbox.models.event import Event


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from nostr_sdk import Event as NostrEvent
    from nostr_sdk import Keys, RelayMessage

    from nostrinbox.models.filter import EventFilter


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class PublishOutcome(NamedTuple):
    """Result of publishing one event to one relay."""

    relay: str
    ok: bool
    message: str = ""


class SubscriptionHandler(Protocol):
    """Callbacks for a streaming subscription on a single relay."""

    async def on_event(self, event: Event) -> None: ...

    async def on_eose(self) -> None: ...

    async def on_closed(self, reason: str) -> None: ...


class RelaySubscription(Protocol):
    async def close(self) -> None: ...


@runtime_checkable
class RelayClient(Protocol):
    """Transport contract used by the fan-out layer.

    Implementations may raise any exception on network failure; callers
    treat a raising relay as absent from the result.
    """

    async def query(
        self, relays: Sequence[str], filters: Sequence[EventFilter], timeout: float
    ) -> list[Event]: ...

    async def subscribe(
        self, relays: Sequence[str], filters: Sequence[EventFilter], handler: SubscriptionHandler
    ) -> RelaySubscription: ...

    async def publish(self, relays: Sequence[str], event: Event) -> list[PublishOutcome]: ...


# ---------------------------------------------------------------------------
# nostr-sdk helpers
# ---------------------------------------------------------------------------


async def create_client(
    keys: Keys | None = None,
    proxy_url: str | None = None,
) -> Client:
    """Create a Nostr client with an optional SOCKS5 proxy.

    Args:
        keys: Optional signing keys (``None`` = read-only client).
        proxy_url: SOCKS5 proxy URL (e.g., ``socks5://127.0.0.1:9050``).

    Returns:
        Configured ``Client`` instance (call ``add_relay()`` before use).

    Note:
        nostr-sdk requires a numeric proxy address, so a hostname is
        resolved via ``asyncio.to_thread(socket.gethostbyname)``.
    """
    builder = ClientBuilder()

    if keys is not None:
        builder = builder.signer(NostrSigner.keys(keys))

    if proxy_url is not None:
        parsed = urlparse(proxy_url)
        proxy_host = parsed.hostname or "127.0.0.1"
        proxy_port = parsed.port or 9050

        bare_host = proxy_host.strip("[]")
        try:
            IPv4Address(bare_host)
        except (AddressValueError, ValueError):
            try:
                IPv6Address(bare_host)
                proxy_host = bare_host
            except (AddressValueError, ValueError):
                proxy_host = await asyncio.to_thread(socket.gethostbyname, proxy_host)

        proxy_mode = ConnectionMode.PROXY(proxy_host, proxy_port)
        conn = Connection().mode(proxy_mode).target(ConnectionTarget.ALL)
        builder = builder.opts(ClientOptions().connection(conn))

    return builder.build()


def to_nostr_filter(event_filter: EventFilter) -> Filter:
    """Build a nostr-sdk ``Filter`` from an [EventFilter][nostrinbox.models.filter.EventFilter]."""
    f = Filter()
    if event_filter.ids:
        f = f.ids([EventId.parse(i) for i in event_filter.ids])
    if event_filter.kinds:
        f = f.kinds([Kind(k) for k in event_filter.kinds])
    if event_filter.authors:
        f = f.authors([PublicKey.parse(a) for a in event_filter.authors])
    for tag_letter, values in event_filter.tags.items():
        alphabet = getattr(Alphabet, tag_letter.upper())
        if tag_letter.isupper():
            tag = SingleLetterTag.uppercase(alphabet)
        else:
            tag = SingleLetterTag.lowercase(alphabet)
        for value in values:
            f = f.custom_tag(tag, value)
    if event_filter.since is not None:
        f = f.since(Timestamp.from_secs(event_filter.since))
    if event_filter.until is not None:
        f = f.until(Timestamp.from_secs(event_filter.until))
    if event_filter.limit is not None:
        f = f.limit(event_filter.limit)
    return f


def _convert_events(relay: str, raw_events: Sequence[NostrEvent]) -> list[Event]:
    events: list[Event] = []
    for raw in raw_events:
        try:
            events.append(Event.from_nostr(raw))
        except (ValueError, TypeError) as e:
            logger.debug("event_conversion_failed relay=%s error=%s", relay, e)
    return events


def _as_str(value: object) -> str:
    return value if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# Subscription bridge
# ---------------------------------------------------------------------------


class _NotificationBridge(HandleNotification):
    """Routes nostr-sdk notifications for known subscription ids to a handler.

    End-of-stored-events is reported once, after every filter of the
    subscription has reached EOSE.
    """

    def __init__(self, relay: str, subscription_ids: set[str], handler: SubscriptionHandler) -> None:
        self._relay = relay
        self._subscription_ids = subscription_ids
        self._awaiting_eose = set(subscription_ids)
        self._handler = handler
        self._closed = False

    async def handle(self, relay_url: RelayUrl, subscription_id: str, event: NostrEvent) -> None:
        if self._closed or _as_str(subscription_id) not in self._subscription_ids:
            return
        try:
            converted = Event.from_nostr(event)
        except (ValueError, TypeError) as e:
            logger.debug("event_conversion_failed relay=%s error=%s", self._relay, e)
            return
        await self._handler.on_event(converted)

    async def handle_msg(self, relay_url: RelayUrl, msg: RelayMessage) -> None:
        if self._closed:
            return
        try:
            payload = json.loads(msg.as_json())
        except (ValueError, TypeError):
            return
        if not isinstance(payload, list) or len(payload) < 2:  # noqa: PLR2004
            return
        kind, sid = payload[0], payload[1]
        if sid not in self._subscription_ids:
            return
        if kind == "EOSE" and sid in self._awaiting_eose:
            self._awaiting_eose.discard(sid)
            if not self._awaiting_eose:
                await self._handler.on_eose()
        elif kind == "CLOSED":
            self._closed = True
            reason = payload[2] if len(payload) > 2 else ""  # noqa: PLR2004
            await self._handler.on_closed(str(reason))


class _NostrSubscription:
    """Dedicated per-relay client streaming notifications to a handler."""

    def __init__(self, relay: str, client: Client, task: asyncio.Task[None]) -> None:
        self._relay = relay
        self._client = client
        self._task = task

    async def close(self) -> None:
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await self._task
        # nostr-sdk client.shutdown() can raise arbitrary errors from the Rust FFI layer
        with contextlib.suppress(Exception):
            await self._client.shutdown()
        logger.debug("subscription_closed relay=%s", self._relay)


class _MultiSubscription:
    def __init__(self, subscriptions: list[_NostrSubscription]) -> None:
        self._subscriptions = subscriptions

    async def close(self) -> None:
        await asyncio.gather(*(s.close() for s in self._subscriptions))


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class NostrRelayClient:
    """[RelayClient][nostrinbox.utils.protocol.RelayClient] backed by nostr-sdk.

    Query and publish reuse one connected client per relay URL; each
    subscription opens its own client so notification streams never mix.
    Call [close()][nostrinbox.utils.protocol.NostrRelayClient.close] (or use
    ``async with``) to release every connection.

    Note:
        Each relay connects in its own task, cached by URL. Callers wait on
        that task through ``asyncio.shield``, so a slow or unreachable relay
        never delays another relay and a caller that times out does not
        abort a connection other callers share. A failed connection is
        forgotten and retried on next use.
    """

    def __init__(
        self,
        keys: Keys | None = None,
        proxy_url: str | None = None,
        *,
        connect_timeout: float = 10.0,
        publish_timeout: float = 10.0,
    ) -> None:
        self._keys = keys
        self._proxy_url = proxy_url
        self._connect_timeout = connect_timeout
        self._publish_timeout = publish_timeout
        self._connections: dict[str, asyncio.Task[Client]] = {}

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _connect(self, relay: str) -> Client:
        client = await create_client(self._keys, self._proxy_url)
        try:
            await client.add_relay(RelayUrl.parse(relay))
            await client.connect()
            await client.wait_for_connection(timedelta(seconds=self._connect_timeout))
        except BaseException:
            # nostr-sdk client.shutdown() can raise arbitrary errors from the Rust FFI layer
            with contextlib.suppress(Exception):
                await client.shutdown()
            raise
        logger.debug("relay_connected relay=%s", relay)
        return client

    async def _client_for(self, relay: str) -> Client:
        task = self._connections.get(relay)
        if task is None:
            task = asyncio.create_task(self._connect(relay), name=f"connect:{relay}")
            task.add_done_callback(lambda t: self._forget_failed(relay, t))
            self._connections[relay] = task
        return await asyncio.shield(task)

    def _forget_failed(self, relay: str, task: asyncio.Task[Client]) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._connections.get(relay) is task:
                del self._connections[relay]
            logger.debug("relay_connect_failed relay=%s", relay)

    async def query(
        self, relays: Sequence[str], filters: Sequence[EventFilter], timeout: float  # noqa: ASYNC109
    ) -> list[Event]:
        batches = await asyncio.gather(
            *(self._query_one(relay, filters, timeout) for relay in relays)
        )
        return [event for batch in batches for event in batch]

    async def _query_one(
        self, relay: str, filters: Sequence[EventFilter], timeout: float  # noqa: ASYNC109
    ) -> list[Event]:
        client = await self._client_for(relay)
        # All filters share one deadline instead of running back to back
        outputs = await asyncio.gather(
            *(
                client.fetch_events(to_nostr_filter(f), timedelta(seconds=timeout))
                for f in filters
            )
        )
        events: list[Event] = []
        for output in outputs:
            events.extend(_convert_events(relay, output.to_vec()))
        return events

    async def subscribe(
        self, relays: Sequence[str], filters: Sequence[EventFilter], handler: SubscriptionHandler
    ) -> RelaySubscription:
        subscriptions = [await self._subscribe_one(relay, filters, handler) for relay in relays]
        if len(subscriptions) == 1:
            return subscriptions[0]
        return _MultiSubscription(subscriptions)

    async def _subscribe_one(
        self, relay: str, filters: Sequence[EventFilter], handler: SubscriptionHandler
    ) -> _NostrSubscription:
        client = await self._connect(relay)
        try:
            subscription_ids: set[str] = set()
            for event_filter in filters:
                output = await client.subscribe(to_nostr_filter(event_filter), None)
                subscription_ids.add(_as_str(output.id))
        except BaseException:
            with contextlib.suppress(Exception):
                await client.shutdown()
            raise

        bridge = _NotificationBridge(relay, subscription_ids, handler)

        async def pump() -> None:
            try:
                await client.handle_notifications(bridge)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001  # FFI errors end the stream for this relay
                logger.debug("notification_stream_failed relay=%s error=%s", relay, e)
                await handler.on_closed(str(e))

        task = asyncio.create_task(pump(), name=f"notifications:{relay}")
        return _NostrSubscription(relay, client, task)

    async def publish(self, relays: Sequence[str], event: Event) -> list[PublishOutcome]:
        nostr_event = event.to_nostr()

        async def send(relay: str) -> PublishOutcome:
            try:
                async with asyncio.timeout(self._publish_timeout):
                    client = await self._client_for(relay)
                    output = await client.send_event(nostr_event)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001  # any relay failure is a per-relay outcome
                return PublishOutcome(relay, ok=False, message=str(e) or type(e).__name__)
            if output.success:
                return PublishOutcome(relay, ok=True)
            failures = [_as_str(reason) for reason in output.failed.values()]
            return PublishOutcome(relay, ok=False, message="; ".join(failures) or "rejected")

        return list(await asyncio.gather(*(send(relay) for relay in relays)))

    async def close(self) -> None:
        """Shut down every pooled relay connection, aborting pending connects."""
        connections, self._connections = self._connections, {}
        for relay, task in connections.items():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
            if task.cancelled() or task.exception() is not None:
                continue
            client = task.result()
            # nostr-sdk Rust FFI can raise arbitrary exception types during shutdown
            with contextlib.suppress(Exception):
                await client.shutdown()
            logger.debug("relay_disconnected relay=%s", relay)
