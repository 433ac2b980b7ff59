"""nostrinbox exception hierarchy.

Only two kinds of failure are surfaced to callers as exceptions: local
precondition failures (raised before any network call) and total send
failure. Decryption misses and relay failures are expected outcomes and
are converted to skips and partial results inside the layers that
observe them.

Exception hierarchy:

```text
NostrInboxError (base -- never raised directly)
├── ConfigurationError       -- config validation, missing keys, bad YAML
├── PreconditionError        -- rejected before any network call
│   ├── MissingIdentityError -- no local key available
│   └── NoRelaysError        -- empty relay list
├── ConnectivityError        -- relay unreachable, network failures
│   └── RelayTimeoutError    -- connection or response timed out
├── ProtocolError            -- malformed events or envelopes
└── PublishingError          -- Nostr event broadcast failures
    └── SendFailedError      -- no envelope scheme reached any relay
```

See Also:
    [BaseService][nostrinbox.core.base_service.BaseService]: Catches all
        exceptions in the
        [run_forever()][nostrinbox.core.base_service.BaseService.run_forever]
        loop.
    [Messenger.send()][nostrinbox.services.messages.Messenger.send]:
        Raises [SendFailedError][nostrinbox.core.exceptions.SendFailedError].
"""

from __future__ import annotations


class NostrInboxError(Exception):
    """Base exception for all nostrinbox errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NostrInboxError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [load_yaml()][nostrinbox.core.yaml.load_yaml]: YAML loading function
            that may trigger configuration errors.
    """


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class PreconditionError(NostrInboxError):
    """An operation was rejected locally before touching the network.

    See Also:
        [MissingIdentityError][nostrinbox.core.exceptions.MissingIdentityError]:
            No key store available.
        [NoRelaysError][nostrinbox.core.exceptions.NoRelaysError]: No relay
            configured for the operation.
    """


class MissingIdentityError(PreconditionError):
    """No local identity (private key) is available for the operation."""


class NoRelaysError(PreconditionError):
    """The operation was given an empty relay list."""


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------


class ConnectivityError(NostrInboxError):
    """Base for all relay/network connectivity errors.

    Raised by
    [RelayFanout.publish()][nostrinbox.services.common.fanout.RelayFanout.publish]
    when no relay could be reached. Queries and subscriptions never raise
    it; unreachable relays are simply absent from their results.
    """


class RelayTimeoutError(ConnectivityError):
    """Connection or response timed out."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrInboxError):
    """Malformed event, envelope or relay message.

    See Also:
        [nostrinbox.nips][nostrinbox.nips]: NIP implementation modules where
            protocol errors typically originate.
    """


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishingError(NostrInboxError):
    """Failed to broadcast a Nostr event to relays.

    See Also:
        [ConnectivityError][nostrinbox.core.exceptions.ConnectivityError]:
            Lower-level connectivity errors that may cause publishing
            failures.
    """


class SendFailedError(PublishingError):
    """A direct message could not be delivered with any envelope scheme.

    Nothing is committed to the conversation store when this is raised.

    Attributes:
        peer: Intended recipient public key.
        attempts: Scheme name to failure reason, in attempt order.
    """

    def __init__(self, peer: str, attempts: dict[str, str]) -> None:
        self.peer = peer
        self.attempts = dict(attempts)
        detail = "; ".join(f"{scheme}: {reason}" for scheme, reason in attempts.items())
        super().__init__(f"Message to {peer[:16]}... not delivered ({detail})")
