"""Result type shared by the envelope decoders.

"This event is not for me" is the common case when scanning a broad
gift-wrap window, so decoders return a
[DecryptOutcome][nostrinbox.nips.base.DecryptOutcome] instead of raising.
Only ``DECRYPTED`` outcomes carry a message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from nostrinbox.models.message import NormalizedMessage


class DecryptStatus(StrEnum):
    """How an envelope was classified.

    Attributes:
        DECRYPTED: Addressed to the local identity and decoded.
        NOT_APPLICABLE: Not addressed to the local identity.
        MALFORMED: Addressed to the local identity but unusable, e.g. a
            missing recipient tag or undecryptable payload.
        UNSUPPORTED_KIND: Outer or inner kind is not a direct message.
    """

    DECRYPTED = "decrypted"
    NOT_APPLICABLE = "not_applicable"
    MALFORMED = "malformed"
    UNSUPPORTED_KIND = "unsupported_kind"


@dataclass(frozen=True, slots=True)
class DecryptOutcome:
    """Outcome of one decryption attempt."""

    status: DecryptStatus
    message: NormalizedMessage | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        if (self.status is DecryptStatus.DECRYPTED) != (self.message is not None):
            raise ValueError("a message is present exactly when status is DECRYPTED")

    @property
    def ok(self) -> bool:
        return self.status is DecryptStatus.DECRYPTED

    @classmethod
    def decrypted(cls, message: NormalizedMessage) -> DecryptOutcome:
        return cls(DecryptStatus.DECRYPTED, message)

    @classmethod
    def not_applicable(cls, reason: str) -> DecryptOutcome:
        return cls(DecryptStatus.NOT_APPLICABLE, reason=reason)

    @classmethod
    def malformed(cls, reason: str) -> DecryptOutcome:
        return cls(DecryptStatus.MALFORMED, reason=reason)

    @classmethod
    def unsupported(cls, reason: str) -> DecryptOutcome:
        return cls(DecryptStatus.UNSUPPORTED_KIND, reason=reason)
