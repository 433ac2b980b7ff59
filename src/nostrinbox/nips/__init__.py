"""Nostr Implementation Possibilities -- envelope encryption and app data.

The NIPs layer depends on [nostrinbox.models][nostrinbox.models] and on the
[KeyStore][nostrinbox.utils.keys.KeyStore] protocol from
[nostrinbox.utils][nostrinbox.utils]. It performs no relay I/O; all
cryptography goes through the key store.

Warning:
    Decoders **never raise** for bad input. Always check
    ``outcome.ok`` (or ``outcome.status``) on the returned
    [DecryptOutcome][nostrinbox.nips.base.DecryptOutcome].

Attributes:
    EnvelopeDecryptor: Routes kind 4 and kind 1059 events to their decoder
        and reduces both to
        [NormalizedMessage][nostrinbox.models.message.NormalizedMessage].
    DecryptOutcome, DecryptStatus: Classification of one decryption attempt.
    decrypt_legacy, build_legacy_message: NIP-04 kind 4 envelopes.
    decrypt_wrapped, build_wrapped_message: NIP-17 messages in NIP-59
        gift wraps.
    build_baseline_event, parse_baseline_event, baseline_filter: NIP-78
        encrypted mirror of the follower baseline.
"""

from nostrinbox.nips.base import DecryptOutcome, DecryptStatus
from nostrinbox.nips.envelope import EnvelopeDecryptor
from nostrinbox.nips.nip04 import build_legacy_message, decrypt_legacy
from nostrinbox.nips.nip17 import build_wrapped_message, decrypt_wrapped
from nostrinbox.nips.nip78 import (
    BASELINE_D_TAG,
    baseline_filter,
    build_baseline_event,
    latest_baseline,
    parse_baseline_event,
)


__all__ = [
    "BASELINE_D_TAG",
    "DecryptOutcome",
    "DecryptStatus",
    "EnvelopeDecryptor",
    "baseline_filter",
    "build_baseline_event",
    "build_legacy_message",
    "build_wrapped_message",
    "decrypt_legacy",
    "decrypt_wrapped",
    "latest_baseline",
    "parse_baseline_event",
]
