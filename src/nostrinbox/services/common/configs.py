"""Shared configuration models for nostrinbox services.

Both services read and write through the same relay sets and share the
fan-out timeouts, so these models are embedded in
[MessagesConfig][nostrinbox.services.messages.MessagesConfig] and
[NotificationsConfig][nostrinbox.services.notifications.NotificationsConfig].

Examples:
    ```yaml
    relays:
      read: [wss://relay.damus.io, wss://nos.lol]
      write: [wss://nos.lol]
      inbox: wss://inbox.example.com
    fanout:
      query_timeout: 10
      backlog_timeout: 5
    ```
"""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from nostrinbox.models.constants import EncryptionScheme


DEFAULT_RELAYS: tuple[str, ...] = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.primal.net",
)


def normalize_relay_url(url: str) -> str:
    """Validate a relay URL and return its canonical form.

    Scheme and host are lowercased and a bare trailing slash is removed.

    Raises:
        ValueError: If the URL is not a ``ws://`` or ``wss://`` URL with a host.
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    if scheme not in ("ws", "wss"):
        raise ValueError(f"relay URL must use ws:// or wss://, got {url!r}")
    if not parsed.hostname:
        raise ValueError(f"relay URL has no host: {url!r}")
    path = parsed.path.rstrip("/")
    normalized = f"{scheme}://{parsed.netloc.lower()}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    return normalized


def _unique(urls: list[str]) -> list[str]:
    return list(dict.fromkeys(urls))


# =============================================================================
# Relays
# =============================================================================


class RelaysConfig(BaseModel):
    """Relay sets used for reading, writing and private inbox delivery.

    Attributes:
        read: Relays queried for messages and notifications.
        write: Relays that receive published events.
        inbox: Optional relay always added for wrapped direct messages,
            on both the read and the write side.
        proxy_url: Optional SOCKS5 proxy for every relay connection.
    """

    read: list[str] = Field(default_factory=lambda: list(DEFAULT_RELAYS))
    write: list[str] = Field(default_factory=lambda: list(DEFAULT_RELAYS))
    inbox: str | None = None
    proxy_url: str | None = None

    @field_validator("read", "write")
    @classmethod
    def _validate_relay_list(cls, v: list[str]) -> list[str]:
        return _unique([normalize_relay_url(url) for url in v])

    @field_validator("inbox")
    @classmethod
    def _validate_inbox(cls, v: str | None) -> str | None:
        return normalize_relay_url(v) if v else None

    def read_relays(self) -> list[str]:
        return list(self.read)

    def write_relays(self) -> list[str]:
        return list(self.write)

    def message_relays(self) -> list[str]:
        """Read relays plus the inbox relay."""
        if self.inbox is None:
            return self.read_relays()
        return _unique([*self.read, self.inbox])

    def send_relays(self, scheme: EncryptionScheme) -> list[str]:
        """Publish targets for a direct message in *scheme*.

        Wrapped messages also go to the inbox relay.
        """
        if scheme is EncryptionScheme.WRAPPED and self.inbox is not None:
            return _unique([*self.write, self.inbox])
        return self.write_relays()


# =============================================================================
# Fan-out
# =============================================================================


class FanoutConfig(BaseModel):
    """Completion bounds for multi-relay operations.

    Attributes:
        query_timeout: Seconds a one-shot query waits for slow relays
            before returning what was merged.
        backlog_timeout: Seconds a subscription waits for every relay to
            signal end of stored events before switching to real time.
        publish_timeout: Seconds allowed for each relay to acknowledge a
            published event.
    """

    query_timeout: float = Field(default=10.0, ge=0.5, le=120.0)
    backlog_timeout: float = Field(default=10.0, ge=0.5, le=120.0)
    publish_timeout: float = Field(default=10.0, ge=0.5, le=120.0)
