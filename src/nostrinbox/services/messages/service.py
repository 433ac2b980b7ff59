"""Messenger service for nostrinbox.

Loads, follows and sends encrypted direct messages for one identity.
Both envelope schemes flow into a single
[ConversationStore][nostrinbox.services.messages.store.ConversationStore]:

1. Query every message relay with three filters: kind 4 authored by the
   local identity, kind 4 addressed to it, and kind 1059 addressed to it
   inside the lookback window.
2. Decrypt everything through the
   [EnvelopeDecryptor][nostrinbox.nips.envelope.EnvelopeDecryptor];
   events that are not ours are dropped silently.
3. Rebuild the conversations and recompute unread counts from the
   persisted watermarks.

[watch()][nostrinbox.services.messages.Messenger.watch] does the same
through a live subscription and then keeps ingesting new messages one
by one.

Sending tries NIP-17 gift wraps first and falls back to legacy NIP-04
envelopes; see [send()][nostrinbox.services.messages.Messenger.send].

See Also:
    [MessagesConfig][nostrinbox.services.messages.MessagesConfig]:
        Configuration model for this service.
    [RelayFanout][nostrinbox.services.common.fanout.RelayFanout]:
        Multi-relay query, subscribe and publish.

Examples:
    ```python
    from nostrinbox.services import Messenger

    messenger = Messenger.from_yaml("config/messenger.yaml")
    async with messenger:
        await messenger.refresh()
        result = await messenger.send(peer_pubkey, "hello")
    ```
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from nostrinbox.core.base_service import BaseService
from nostrinbox.core.exceptions import (
    ConnectivityError,
    MissingIdentityError,
    NoRelaysError,
    ProtocolError,
    PublishingError,
    SendFailedError,
)
from nostrinbox.core.storage import create_store
from nostrinbox.models.constants import EncryptionScheme, EventKind, ServiceName
from nostrinbox.models.filter import EventFilter
from nostrinbox.nips.envelope import EnvelopeDecryptor
from nostrinbox.nips.nip04 import build_legacy_message
from nostrinbox.nips.nip17 import build_wrapped_message
from nostrinbox.services.common.fanout import RelayFanout
from nostrinbox.services.common.profiles import ProfileCache
from nostrinbox.services.common.utils import parse_pubkey
from nostrinbox.services.common.watermarks import WatermarkStore
from nostrinbox.utils.keys import LocalKeyStore
from nostrinbox.utils.protocol import NostrRelayClient

from .configs import MessagesConfig
from .store import ConversationStore


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from nostrinbox.core.storage import KeyValueStore
    from nostrinbox.models.event import Event
    from nostrinbox.models.message import Conversation, NormalizedMessage
    from nostrinbox.models.profile import Profile
    from nostrinbox.services.common.fanout import FanoutSubscription
    from nostrinbox.utils.keys import KeyStore
    from nostrinbox.utils.protocol import RelayClient


# Failures that make the current envelope scheme unusable for this send
_SEND_ERRORS = (ProtocolError, PublishingError, ConnectivityError)


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a successful [send()][nostrinbox.services.messages.Messenger.send].

    Attributes:
        scheme: Envelope scheme that was actually delivered.
        event_ids: Ids of the published events (recipient wrap and backup
            wrap, or the single legacy event).
        fell_back: True when the wrapped scheme was attempted and failed.
        message: The committed message, or None if the published envelope
            could not be read back.
        backup_stored: False when the recipient wrap was delivered but no
            relay accepted the self-addressed backup wrap. Other devices
            of the sender will not see the message.
    """

    scheme: EncryptionScheme
    event_ids: tuple[str, ...]
    fell_back: bool = False
    message: NormalizedMessage | None = None
    backup_stored: bool = True


class Messenger(BaseService[MessagesConfig]):
    """Direct message service for one local identity.

    The relay client and key store are injectable; when omitted they are
    built from the configuration (``NostrRelayClient`` and
    ``LocalKeyStore``). A Messenger without a key can still be
    constructed, but every operation that needs the identity raises
    [MissingIdentityError][nostrinbox.core.exceptions.MissingIdentityError]
    before touching the network.

    See Also:
        [MessagesConfig][nostrinbox.services.messages.MessagesConfig]:
            Configuration model for this service.
        [Notifier][nostrinbox.services.notifications.Notifier]: Sibling
            service for the notification feed.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.MESSENGER
    CONFIG_CLASS: ClassVar[type[MessagesConfig]] = MessagesConfig

    def __init__(
        self,
        store: KeyValueStore | None = None,
        config: MessagesConfig | None = None,
        *,
        relay_client: RelayClient | None = None,
        key_store: KeyStore | None = None,
    ) -> None:
        config = config or MessagesConfig()
        super().__init__(
            store=store if store is not None else create_store(config.storage),
            config=config,
        )
        self._config: MessagesConfig
        self._owns_client = relay_client is None
        self._relay_client: RelayClient = relay_client or NostrRelayClient(
            keys=config.keys.keys,
            proxy_url=config.relays.proxy_url,
            connect_timeout=config.fanout.query_timeout,
            publish_timeout=config.fanout.publish_timeout,
        )
        self._key_store = key_store if key_store is not None else LocalKeyStore.from_config(
            config.keys
        )
        self._fanout = RelayFanout(
            self._relay_client,
            query_timeout=config.fanout.query_timeout,
            backlog_timeout=config.fanout.backlog_timeout,
            publish_timeout=config.fanout.publish_timeout,
        )
        self._decryptor = (
            EnvelopeDecryptor(self._key_store) if self._key_store is not None else None
        )
        self._watermarks = WatermarkStore(self._store)
        self._conversations = ConversationStore(self._watermarks)
        self._profiles = ProfileCache(self._fanout)
        self._subscription: FanoutSubscription | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop_watching()
        if self._owns_client and isinstance(self._relay_client, NostrRelayClient):
            await self._relay_client.close()
        await super().__aexit__(exc_type, exc_val, exc_tb)

    async def run(self) -> None:
        """One refresh cycle; see [refresh()][nostrinbox.services.messages.Messenger.refresh]."""
        await self.refresh()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def conversations(self) -> ConversationStore:
        return self._conversations

    @property
    def key_store(self) -> KeyStore | None:
        return self._key_store

    @property
    def fanout(self) -> RelayFanout:
        return self._fanout

    @property
    def watching(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    def profile(self, pubkey: str) -> Profile | None:
        return self._profiles.get(pubkey)

    def _require_identity(self) -> tuple[KeyStore, EnvelopeDecryptor]:
        if self._key_store is None or self._decryptor is None:
            raise MissingIdentityError(
                f"no private key available (set {self._config.keys.keys_env})"
            )
        return self._key_store, self._decryptor

    def _message_relays(self) -> list[str]:
        relays = self._config.relays.message_relays()
        if not relays:
            raise NoRelaysError("no read relays configured")
        return relays

    def message_filters(self, pubkey: str, now: int | None = None) -> list[EventFilter]:
        """Relay filters selecting every direct message of *pubkey*."""
        now = int(time.time()) if now is None else now
        since = max(now - self._config.lookback_seconds, 0)
        return [
            EventFilter(
                kinds=(EventKind.ENCRYPTED_DM,),
                authors=(pubkey,),
                limit=self._config.legacy_limit,
            ),
            EventFilter(
                kinds=(EventKind.ENCRYPTED_DM,),
                tags={"p": (pubkey,)},
                limit=self._config.legacy_limit,
            ),
            EventFilter(
                kinds=(EventKind.GIFT_WRAP,),
                tags={"p": (pubkey,)},
                since=since,
                limit=self._config.wrapped_limit,
            ),
        ]

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def refresh(self) -> list[Conversation]:
        """Reload every conversation with a one-shot fan-out query.

        Returns:
            Conversations ordered by most recent activity.

        Raises:
            MissingIdentityError: If no private key is configured.
            NoRelaysError: If no read relay is configured.
        """
        key_store, decryptor = self._require_identity()
        relays = self._message_relays()

        events = await self._fanout.query(relays, self.message_filters(key_store.public_key()))
        messages = await decryptor.decrypt_many(events)
        await self._conversations.ingest_batch(messages)
        await self._fetch_profiles()
        self._emit_gauges()

        self._logger.info(
            "messages_refreshed",
            events=len(events),
            messages=len(messages),
            conversations=len(self._conversations),
            unread=self._conversations.total_unread,
        )
        return self._conversations.conversations()

    async def watch(self) -> FanoutSubscription:
        """Start following direct messages live.

        Stored messages are ingested as one batch once every relay finished
        its backlog (or the backlog timeout elapsed); later messages are
        ingested one by one. Calling it again while watching returns the
        running subscription.
        """
        if self._subscription is not None and not self._subscription.closed:
            return self._subscription
        key_store, decryptor = self._require_identity()
        relays = self._message_relays()

        async def on_backlog(events: list[Event]) -> None:
            messages = await decryptor.decrypt_many(events)
            await self._conversations.ingest_batch(messages)
            await self._fetch_profiles()
            self._emit_gauges()
            self._logger.info(
                "backlog_complete",
                events=len(events),
                messages=len(messages),
                conversations=len(self._conversations),
            )

        async def on_event(event: Event) -> None:
            outcome = await decryptor.decrypt(event)
            if outcome.message is None:
                return
            if await self._conversations.ingest_one(outcome.message):
                self.inc_counter("messages_received_live")
                self._emit_gauges()
                self._logger.debug(
                    "message_ingested", peer=outcome.message.peer, sent=outcome.message.sent
                )

        self._subscription = await self._fanout.subscribe(
            relays,
            self.message_filters(key_store.public_key()),
            on_event,
            on_backlog=on_backlog,
        )
        return self._subscription

    async def stop_watching(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def _fetch_profiles(self) -> None:
        if not self._config.fetch_profiles or len(self._conversations) == 0:
            return
        peers = [c.peer for c in self._conversations.conversations()]
        await self._profiles.fetch(peers, self._config.relays.read_relays())

    # -------------------------------------------------------------------------
    # Conversation state
    # -------------------------------------------------------------------------

    def start_conversation(self, peer: str) -> Conversation:
        return self._conversations.start_conversation(parse_pubkey(peer))

    def select_conversation(self, peer: str) -> Conversation:
        return self._conversations.select_conversation(parse_pubkey(peer))

    async def mark_read(self, peer: str | None = None) -> int:
        watermark = await self._conversations.mark_read(
            parse_pubkey(peer) if peer is not None else None
        )
        self._emit_gauges()
        return watermark

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, peer: str, content: str) -> SendResult:
        """Send *content* to *peer*, preferring gift wraps.

        The wrapped scheme publishes a recipient wrap and a backup wrap to
        the sender concurrently; the recipient wrap must be accepted by at
        least one relay. A construction failure or an undelivered
        recipient wrap falls back to a single legacy kind 4 event. A lost
        backup wrap only clears
        [SendResult.backup_stored][nostrinbox.services.messages.SendResult].
        The sender-readable envelope is decrypted and committed to the
        conversation only after a successful publish.

        Args:
            peer: Recipient public key, hex or ``npub``.
            content: Plaintext message.

        Raises:
            MissingIdentityError: If no private key is configured.
            NoRelaysError: If no write relay is configured.
            ValueError: If *content* is empty or *peer* is not a public key.
            SendFailedError: If neither scheme reached any relay. Nothing
                is committed in that case.
        """
        key_store, _decryptor = self._require_identity()
        if not self._config.relays.write:
            raise NoRelaysError("no write relays configured")
        if not content.strip():
            raise ValueError("message content is empty")
        peer_hex = parse_pubkey(peer)

        attempts: dict[str, str] = {}
        if self._config.wrapped_enabled:
            try:
                return await self._send_wrapped(key_store, peer_hex, content)
            except _SEND_ERRORS as e:
                attempts[EncryptionScheme.WRAPPED] = str(e)
                self.inc_counter("send_fallbacks")
                self._logger.warning("send_fallback", peer=peer_hex, error=str(e))

        try:
            return await self._send_legacy(key_store, peer_hex, content, fell_back=bool(attempts))
        except _SEND_ERRORS as e:
            attempts[EncryptionScheme.LEGACY] = str(e)
            self.inc_counter("send_failures")
            self._logger.error("send_failed", peer=peer_hex, attempts=attempts)
            raise SendFailedError(peer_hex, attempts) from e

    async def _send_wrapped(self, key_store: KeyStore, peer: str, content: str) -> SendResult:
        try:
            pair = await build_wrapped_message(key_store, peer, content)
        except Exception as e:
            raise ProtocolError(f"gift wrap construction failed: {e}") from e

        relays = self._config.relays.send_relays(EncryptionScheme.WRAPPED)
        delivered, stored = await asyncio.gather(
            self._publish(relays, pair.recipient),
            self._publish(relays, pair.backup),
            return_exceptions=True,
        )
        if isinstance(delivered, BaseException):
            raise delivered
        if isinstance(stored, BaseException):
            if not isinstance(stored, _SEND_ERRORS):
                raise stored
            # The peer already has the message; falling back would duplicate it
            self._logger.warning("backup_wrap_not_stored", peer=peer, error=str(stored))

        message = await self._commit(pair.backup)
        self.inc_counter("messages_sent_wrapped")
        self._logger.info("message_sent", peer=peer, scheme=EncryptionScheme.WRAPPED)
        return SendResult(
            scheme=EncryptionScheme.WRAPPED,
            event_ids=(pair.recipient.id, pair.backup.id),
            message=message,
            backup_stored=stored is None,
        )

    async def _send_legacy(
        self, key_store: KeyStore, peer: str, content: str, *, fell_back: bool
    ) -> SendResult:
        try:
            event = await build_legacy_message(key_store, peer, content)
        except Exception as e:
            raise ProtocolError(f"legacy message construction failed: {e}") from e

        await self._publish(self._config.relays.send_relays(EncryptionScheme.LEGACY), event)

        message = await self._commit(event)
        self.inc_counter("messages_sent_legacy")
        self._logger.info(
            "message_sent", peer=peer, scheme=EncryptionScheme.LEGACY, fell_back=fell_back
        )
        return SendResult(
            scheme=EncryptionScheme.LEGACY,
            event_ids=(event.id,),
            fell_back=fell_back,
            message=message,
        )

    async def _publish(self, relays: Sequence[str], event: Event) -> None:
        outcomes = await self._fanout.publish(relays, event)
        if not any(outcome.ok for outcome in outcomes):
            reasons = "; ".join(f"{o.relay}: {o.message}" for o in outcomes)
            raise PublishingError(f"no relay accepted event {event.id} ({reasons})")

    async def _commit(self, event: Event) -> NormalizedMessage | None:
        _key_store, decryptor = self._require_identity()
        outcome = await decryptor.decrypt(event)
        if outcome.message is None:
            self._logger.warning("sent_message_unreadable", id=event.id, reason=outcome.reason)
            return None
        await self._conversations.record_sent(outcome.message)
        self._emit_gauges()
        return outcome.message

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def _emit_gauges(self) -> None:
        self.set_gauge("conversations", len(self._conversations))
        self.set_gauge("unread_messages", self._conversations.total_unread)

