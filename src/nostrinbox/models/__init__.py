"""Pure frozen dataclasses for events, messages, notifications and baselines.

The models layer is the foundation of the package DAG. It depends on no
other nostrinbox package; the only third-party import is ``nostr_sdk``,
used for converting events to and from the SDK types. Every model uses
``@dataclass(frozen=True, slots=True)`` and validates in ``__post_init__``
so invalid instances never escape the constructor.

Attributes:
    Event: Signed, content-addressed relay event. Identity is ``id``.
    Rumor: Unsigned inner event recovered from a gift wrap.
    Unwrapped: Seal signer plus rumor.
    EventFilter: NIP-01 subscription filter with local matching.
    NormalizedMessage: Plaintext direct message with authoritative time
        and direction.
    Conversation: Read-only per-peer thread snapshot.
    NotificationItem: One interaction in the notification feed.
    Profile: Kind 0 display metadata.
    FollowerBaselineSnapshot: Persisted follower set with first-observed
        times.
    FollowerDiff: New and recent followers produced by a baseline run.
    EventKind: Known kinds plus an explicit ``UNKNOWN`` variant.

Note:
    All models use ``object.__setattr__`` in ``__post_init__`` to store
    normalized values on frozen dataclasses.
"""

from .baseline import BASELINE_VERSION, FollowerBaselineSnapshot, FollowerDiff
from .constants import (
    EVENT_KIND_MAX,
    EncryptionScheme,
    EventKind,
    NotificationType,
    ServiceName,
)
from .event import Event, Rumor, Unwrapped
from .filter import EventFilter
from .message import Conversation, NormalizedMessage
from .notification import NotificationItem
from .profile import Profile


__all__ = [
    "BASELINE_VERSION",
    "EVENT_KIND_MAX",
    "Conversation",
    "EncryptionScheme",
    "Event",
    "EventFilter",
    "EventKind",
    "FollowerBaselineSnapshot",
    "FollowerDiff",
    "NormalizedMessage",
    "NotificationItem",
    "NotificationType",
    "Profile",
    "Rumor",
    "ServiceName",
    "Unwrapped",
]
