"""Unit tests for services.common.utils module."""

import pytest
from nostr_sdk import Keys

from nostrinbox.services.common.utils import excerpt, is_hex_key, parse_pubkey


class TestIsHexKey:
    """Tests for is_hex_key."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("a" * 64, True),
            ("0123456789abcdef" * 4, True),
            ("A" * 64, False),
            ("a" * 63, False),
            ("g" * 64, False),
            (None, False),
            (123, False),
        ],
    )
    def test_values(self, value: object, expected: bool) -> None:
        assert is_hex_key(value) is expected


class TestParsePubkey:
    """Tests for parse_pubkey."""

    def test_hex_lowercased(self) -> None:
        assert parse_pubkey(" " + "AB" * 32 + " ") == "ab" * 32

    def test_npub_decoded(self) -> None:
        keys = Keys.generate()
        npub = keys.public_key().to_bech32()
        assert parse_pubkey(npub) == keys.public_key().to_hex()

    @pytest.mark.parametrize("value", ["", "npub1invalid", "xyz"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError, match="invalid public key"):
            parse_pubkey(value)


class TestExcerpt:
    """Tests for excerpt."""

    def test_short_text_unchanged(self) -> None:
        assert excerpt("hello", 10) == "hello"

    def test_exact_length_unchanged(self) -> None:
        assert excerpt("x" * 10, 10) == "x" * 10

    def test_truncated_with_ellipsis(self) -> None:
        assert excerpt("abcdefghij", 4) == "abcd..."
