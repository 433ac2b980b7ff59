"""Shared utility functions for nostrinbox services.

Provides lightweight helpers used by more than one service. Domain-specific
logic belongs in the per-service modules; only truly shared primitives
live here.

See Also:
    [configs][nostrinbox.services.common.configs]: Shared Pydantic relay
        and fan-out configuration models.
"""

from __future__ import annotations

from nostr_sdk import PublicKey


_HEX_KEY_LENGTH = 64
_HEX_DIGITS = frozenset("0123456789abcdef")


def is_hex_key(value: object) -> bool:
    """Return True for a lowercase 64-character hex string (event id or pubkey)."""
    return (
        isinstance(value, str)
        and len(value) == _HEX_KEY_LENGTH
        and all(c in _HEX_DIGITS for c in value)
    )


def parse_pubkey(value: str) -> str:
    """Normalize a hex or ``npub`` public key to lowercase hex.

    Hex input is only checked for shape; bech32 input is decoded by
    nostr-sdk.

    Raises:
        ValueError: If *value* is not a public key.
    """
    candidate = value.strip()
    if is_hex_key(candidate.lower()):
        return candidate.lower()
    try:
        return PublicKey.parse(candidate).to_hex()
    except Exception as e:
        raise ValueError(f"invalid public key: {value!r}") from e


def excerpt(text: str, length: int) -> str:
    """First *length* characters of *text*, with ``...`` when truncated."""
    if len(text) <= length:
        return text
    return text[:length] + "..."
