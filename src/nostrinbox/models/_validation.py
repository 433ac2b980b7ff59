"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used by ``__post_init__``
methods in sibling model modules to enforce runtime type constraints,
hex identifiers, and null-byte safety.
"""

from __future__ import annotations

import string
from collections.abc import Sequence
from typing import Any


HEX_ID_LENGTH = 64

_HEX_DIGITS = frozenset(string.hexdigits.lower())


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    validate_str_no_null(value, name)
    if not value:
        raise ValueError(f"{name} must not be empty")


def is_hex_id(value: Any) -> bool:
    """Return True if *value* is a lowercase 64-character hex string."""
    return (
        isinstance(value, str)
        and len(value) == HEX_ID_LENGTH
        and all(c in _HEX_DIGITS for c in value)
    )


def validate_hex_id(value: Any, name: str) -> None:
    """Raise if *value* is not a lowercase 64-character hex string."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if not is_hex_id(value):
        raise ValueError(f"{name} must be a 64-character lowercase hex string")


def normalize_tags(value: Any, name: str) -> tuple[tuple[str, ...], ...]:
    """Convert a sequence of string sequences into an immutable tag tuple.

    Raises:
        TypeError: If *value* or any tag is not a sequence of strings.
        ValueError: If a tag value contains null bytes.
    """
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise TypeError(f"{name} must be a sequence of tags, got {type(value).__name__}")
    tags: list[tuple[str, ...]] = []
    for tag in value:
        if isinstance(tag, str) or not isinstance(tag, Sequence):
            raise TypeError(f"{name} entries must be sequences, got {type(tag).__name__}")
        for item in tag:
            validate_str_no_null(item, name)
        tags.append(tuple(tag))
    return tuple(tags)
