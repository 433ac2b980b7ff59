"""Multi-relay fan-out with deduplication and bounded completion.

[RelayFanout][nostrinbox.services.common.fanout.RelayFanout] issues the same
request to every relay concurrently and merges the answers:

- ``query`` returns once every relay answered or the timeout elapsed,
  with whatever was merged by then. Failing relays are simply absent.
- ``subscribe`` buffers stored events until every relay signaled end of
  stored events (or failed, or the backlog timeout elapsed), hands the
  buffer to ``on_backlog`` once, then streams new events one by one.
- ``publish`` sends one event to every relay and reports per-relay
  outcomes.

Each operation owns a fresh
[EventDeduper][nostrinbox.services.common.dedup.EventDeduper].

See Also:
    [RelayClient][nostrinbox.utils.protocol.RelayClient]: Per-relay
        transport contract this module coordinates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, NamedTuple

from nostrinbox.core.exceptions import ConnectivityError, NoRelaysError, RelayTimeoutError
from nostrinbox.utils.protocol import PublishOutcome

from .dedup import EventDeduper


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from nostrinbox.models.event import Event
    from nostrinbox.models.filter import EventFilter
    from nostrinbox.utils.protocol import RelayClient, RelaySubscription

    EventCallback = Callable[[Event], Awaitable[None]]
    BacklogCallback = Callable[[list[Event]], Awaitable[None]]


logger = logging.getLogger(__name__)


class QueryResult(NamedTuple):
    """Merged events of a fan-out query and the relays that answered it."""

    events: list[Event]
    answered: tuple[str, ...]


def _unique(relays: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(relays))


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


class _RelayHandler:
    """Routes one relay's callbacks into the shared subscription."""

    __slots__ = ("_relay", "_subscription")

    def __init__(self, subscription: FanoutSubscription, relay: str) -> None:
        self._subscription = subscription
        self._relay = relay

    async def on_event(self, event: Event) -> None:
        await self._subscription._deliver(self._relay, event)

    async def on_eose(self) -> None:
        await self._subscription._relay_ended(self._relay, responded=True)

    async def on_closed(self, reason: str) -> None:
        await self._subscription._relay_failed(self._relay, reason)


class FanoutSubscription:
    """A live subscription across several relays.

    Deliveries to ``on_event`` and ``on_backlog`` are serialized by a lock,
    so no real-time event is delivered before the backlog has been handed
    over. After [close()][nostrinbox.services.common.fanout.FanoutSubscription.close]
    no callback runs again.
    """

    def __init__(
        self,
        relays: Sequence[str],
        on_event: EventCallback,
        on_backlog: BacklogCallback | None = None,
    ) -> None:
        self._relays = tuple(relays)
        self._on_event = on_event
        self._on_backlog = on_backlog
        self._deduper = EventDeduper()
        self._pending: set[str] = set(self._relays)
        self._responded: set[str] = set()
        self._failed: set[str] = set()
        self._buffer: list[Event] = []
        self._lock = asyncio.Lock()
        self._backlog_complete = False
        self._backlog_event = asyncio.Event()
        self._closed = False
        self._subscriptions: list[RelaySubscription] = []
        self._timer: asyncio.Task[None] | None = None

    @property
    def relays(self) -> tuple[str, ...]:
        return self._relays

    @property
    def backlog_complete(self) -> bool:
        return self._backlog_complete

    @property
    def responded_relays(self) -> frozenset[str]:
        """Relays that signaled end of stored events."""
        return frozenset(self._responded)

    @property
    def failed_relays(self) -> frozenset[str]:
        return frozenset(self._failed)

    @property
    def closed(self) -> bool:
        return self._closed

    def handler_for(self, relay: str) -> _RelayHandler:
        return _RelayHandler(self, relay)

    async def wait_backlog(self) -> None:
        """Block until the backlog was delivered or the subscription closed."""
        await self._backlog_event.wait()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _start_timer(self, timeout: float) -> None:  # noqa: ASYNC109
        async def expire() -> None:
            await asyncio.sleep(timeout)
            await self._complete_backlog("timeout")

        self._timer = asyncio.create_task(expire(), name="fanout:backlog-timeout")

    async def _attach(self, subscription: RelaySubscription) -> None:
        if self._closed:
            await self._close_relay_subscription(subscription)
            return
        self._subscriptions.append(subscription)

    async def close(self) -> None:
        """Stop all deliveries and close every relay subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._backlog_event.set()
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await self._close_relay_subscription(subscription)
        logger.debug("fanout_subscription_closed relays=%d", len(self._relays))

    @staticmethod
    async def _close_relay_subscription(subscription: RelaySubscription) -> None:
        try:
            await subscription.close()
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001  # a relay failing to close is already gone
            logger.debug("relay_subscription_close_failed error=%s", e)

    # -------------------------------------------------------------------------
    # Relay callbacks
    # -------------------------------------------------------------------------

    async def _deliver(self, relay: str, event: Event) -> None:
        if self._closed or relay in self._failed:
            return
        if not self._deduper.admit(event):
            return
        async with self._lock:
            if self._closed:
                return
            if not self._backlog_complete and self._on_backlog is not None:
                self._buffer.append(event)
                return
            await self._invoke(self._on_event, event)

    async def _relay_ended(self, relay: str, *, responded: bool) -> None:
        if relay not in self._pending:
            return
        self._pending.discard(relay)
        if responded:
            self._responded.add(relay)
        if not self._pending:
            await self._complete_backlog("all_relays_ended")

    async def _relay_failed(self, relay: str, reason: str) -> None:
        if relay in self._failed:
            return
        self._failed.add(relay)
        logger.debug("fanout_relay_ended relay=%s reason=%s", relay, reason)
        await self._relay_ended(relay, responded=False)

    async def _complete_backlog(self, reason: str) -> None:
        async with self._lock:
            if self._backlog_complete or self._closed:
                return
            self._backlog_complete = True
            backlog, self._buffer = self._buffer, []
            logger.debug(
                "fanout_backlog_complete reason=%s events=%d responded=%d/%d",
                reason,
                len(backlog),
                len(self._responded),
                len(self._relays),
            )
            if self._on_backlog is not None:
                await self._invoke(self._on_backlog, backlog)
            self._backlog_event.set()
        if self._timer is not None and self._timer is not asyncio.current_task():
            self._timer.cancel()

    @staticmethod
    async def _invoke(callback: Callable[..., Awaitable[None]], payload: object) -> None:
        try:
            await callback(payload)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Keep the relay streams alive; the consumer owns its own errors
            logger.exception("fanout_callback_failed")


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class RelayFanout:
    """Coordinates one request across many relays.

    Args:
        relay_client: Per-relay transport.
        query_timeout: Default completion bound for
            [query()][nostrinbox.services.common.fanout.RelayFanout.query].
        backlog_timeout: Default completion bound for the backlog phase of
            [subscribe()][nostrinbox.services.common.fanout.RelayFanout.subscribe].
        publish_timeout: Per-relay bound for
            [publish()][nostrinbox.services.common.fanout.RelayFanout.publish].
    """

    def __init__(
        self,
        relay_client: RelayClient,
        *,
        query_timeout: float = 10.0,
        backlog_timeout: float = 10.0,
        publish_timeout: float = 10.0,
    ) -> None:
        self._client = relay_client
        self._query_timeout = query_timeout
        self._backlog_timeout = backlog_timeout
        self._publish_timeout = publish_timeout

    @property
    def relay_client(self) -> RelayClient:
        return self._client

    async def query(
        self,
        relays: Sequence[str],
        filters: Sequence[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[Event]:
        """Query every relay and merge the deduplicated results.

        Returns when all relays answered or *timeout* elapsed. Relays that
        raise or are still pending at the deadline contribute nothing.

        Raises:
            NoRelaysError: If *relays* is empty.

        See Also:
            [query_result()][nostrinbox.services.common.fanout.RelayFanout.query_result]:
                Same query, also reporting which relays answered.
        """
        return (await self.query_result(relays, filters, timeout)).events

    async def query_result(
        self,
        relays: Sequence[str],
        filters: Sequence[EventFilter],
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> QueryResult:
        """Query every relay, reporting the merged events and the answering relays.

        A relay counts as answered when its query completed before the
        deadline without raising, even if it returned no events.
        """
        targets = _unique(relays)
        if not targets:
            raise NoRelaysError("fan-out query needs at least one relay")
        if not filters:
            return QueryResult([], ())
        deadline = self._query_timeout if timeout is None else timeout

        tasks = {
            relay: asyncio.create_task(
                self._query_relay(relay, filters, deadline), name=f"fanout:query:{relay}"
            )
            for relay in targets
        }
        try:
            _done, pending = await asyncio.wait(tasks.values(), timeout=deadline)
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug("fanout_query_timeout pending=%d total=%d", len(pending), len(targets))

        deduper = EventDeduper()
        merged: list[Event] = []
        answered: list[str] = []
        for relay, task in tasks.items():
            if task.cancelled() or task in pending:
                continue
            events = task.result()
            if events is None:
                continue
            answered.append(relay)
            for event in events:
                if deduper.admit(event):
                    merged.append(event)
        return QueryResult(merged, tuple(answered))

    async def _query_relay(
        self,
        relay: str,
        filters: Sequence[EventFilter],
        timeout: float,  # noqa: ASYNC109
    ) -> list[Event] | None:
        try:
            return await self._client.query([relay], filters, timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001  # a failing relay is absent from the result
            logger.warning("relay_query_failed relay=%s error=%s", relay, e)
            return None

    async def subscribe(
        self,
        relays: Sequence[str],
        filters: Sequence[EventFilter],
        on_event: EventCallback,
        *,
        on_backlog: BacklogCallback | None = None,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> FanoutSubscription:
        """Open one subscription per relay and merge their streams.

        Without ``on_backlog`` every admitted event goes straight to
        ``on_event``; the backlog phase still completes so callers can
        ``wait_backlog()``.

        Raises:
            NoRelaysError: If *relays* is empty.
        """
        targets = _unique(relays)
        if not targets:
            raise NoRelaysError("fan-out subscription needs at least one relay")
        deadline = self._backlog_timeout if timeout is None else timeout

        subscription = FanoutSubscription(targets, on_event, on_backlog)
        subscription._start_timer(deadline)
        try:
            await asyncio.gather(
                *(self._subscribe_relay(subscription, relay, filters, deadline) for relay in targets)
            )
        except BaseException:
            await subscription.close()
            raise
        return subscription

    async def _subscribe_relay(
        self,
        subscription: FanoutSubscription,
        relay: str,
        filters: Sequence[EventFilter],
        timeout: float,  # noqa: ASYNC109
    ) -> None:
        try:
            async with asyncio.timeout(timeout):
                relay_subscription = await self._client.subscribe(
                    [relay], filters, subscription.handler_for(relay)
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001  # counts as ended for the backlog phase
            logger.warning("relay_subscribe_failed relay=%s error=%s", relay, e)
            await subscription._relay_failed(relay, str(e) or type(e).__name__)
            return
        await subscription._attach(relay_subscription)

    async def publish(
        self,
        relays: Sequence[str],
        event: Event,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> list[PublishOutcome]:
        """Publish *event* to every relay and collect per-relay outcomes.

        A relay that rejects the event yields ``ok=False`` with the relay's
        message. Acceptance policy is up to the caller.

        Raises:
            NoRelaysError: If *relays* is empty.
            RelayTimeoutError: If no relay answered in time.
            ConnectivityError: If no relay could be reached at all.
        """
        targets = _unique(relays)
        if not targets:
            raise NoRelaysError("publish needs at least one relay")
        deadline = self._publish_timeout if timeout is None else timeout

        results = await asyncio.gather(
            *(self._publish_relay(relay, event, deadline) for relay in targets)
        )
        outcomes = [outcome for outcome, _error in results]
        errors = [error for _outcome, error in results if error is not None]

        if len(errors) == len(targets):
            if all(isinstance(e, TimeoutError) for e in errors):
                raise RelayTimeoutError(f"no relay acknowledged event {event.id} in time")
            raise ConnectivityError(f"no relay reachable for event {event.id}")
        logger.debug(
            "fanout_published id=%s accepted=%d total=%d",
            event.id,
            sum(1 for o in outcomes if o.ok),
            len(targets),
        )
        return outcomes

    async def _publish_relay(
        self,
        relay: str,
        event: Event,
        timeout: float,  # noqa: ASYNC109
    ) -> tuple[PublishOutcome, Exception | None]:
        try:
            async with asyncio.timeout(timeout):
                outcomes = await self._client.publish([relay], event)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001  # recorded as a per-relay failure
            logger.warning("relay_publish_failed relay=%s error=%s", relay, e)
            return PublishOutcome(relay, ok=False, message=str(e) or type(e).__name__), e
        for outcome in outcomes:
            if outcome.relay == relay:
                return outcome, None
        return PublishOutcome(relay, ok=False, message="no acknowledgement"), None
