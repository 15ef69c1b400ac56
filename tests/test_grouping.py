"""
Tests for fingerprinting and title rules.

Pure functions, no database needed.
"""

import hashlib

from faultline.grouping import (
    fingerprint_hash,
    generate_group_title,
    normalize_message,
    symptom_fingerprint,
)


class TestFingerprintHash:
    """Tests for fingerprint_hash."""

    def test_is_sha256_of_joined_tokens(self):
        """Tokens are joined with '::' before hashing."""
        expected = hashlib.sha256(b"TypeError::x is not defined").hexdigest()
        assert fingerprint_hash(["TypeError", "x is not defined"]) == expected

    def test_deterministic(self):
        """Same tokens always give the same hash."""
        tokens = ["ReferenceError", "x is not defined", "javascript"]
        assert fingerprint_hash(tokens) == fingerprint_hash(list(tokens))

    def test_order_matters(self):
        """Token order is part of the identity."""
        assert fingerprint_hash(["a", "b"]) != fingerprint_hash(["b", "a"])

    def test_hex_digest_length(self):
        assert len(fingerprint_hash(["x"])) == 64


class TestNormalizeMessage:
    """Tests for normalize_message."""

    def test_digits_collapse(self):
        """Different numbers normalize to the same text."""
        assert normalize_message("User 42 not found") == normalize_message("User 1337 not found")

    def test_uuid_replaced_whole(self):
        """A UUID is replaced before its digit runs are."""
        text = normalize_message("Order 8c6f1d2e-4b3a-4c5d-9e8f-0a1b2c3d4e5f missing")
        assert text == "Order UUID missing"

    def test_hex_literal(self):
        assert normalize_message("Segfault at 0x7ffe12ab") == "Segfault at 0xHEX"

    def test_quoted_values(self):
        assert normalize_message("Unknown key 'user_id'") == 'Unknown key "..."'

    def test_whitespace_collapsed(self):
        assert normalize_message("  too   many\n spaces ") == "too many spaces"


class TestSymptomFingerprint:
    def test_includes_platform_when_given(self):
        assert symptom_fingerprint("TypeError", "item 3", "javascript") == [
            "TypeError", "item N", "javascript",
        ]

    def test_without_platform(self):
        assert symptom_fingerprint("TypeError", "item 3") == ["TypeError", "item N"]


class TestGenerateGroupTitle:
    """Tests for the group title rules."""

    def test_type_and_value(self):
        """Both exception fields give '{type}: {value}'."""
        title = generate_group_title(
            "ignored message", "ValueError", "Invalid email format provided"
        )
        assert title == "ValueError: Invalid email format provided"

    def test_long_message_truncated(self):
        """Without exception fields the message is cut to 100 characters."""
        message = "m" * 60 + "n" * 100
        title = generate_group_title(message)
        assert len(title) == 100
        assert message.startswith(title)

    def test_only_type_falls_back_to_message(self):
        """A type without a value is not enough for the '{type}: {value}' form."""
        assert generate_group_title("boom", "RuntimeError", None) == "boom"

    def test_long_exception_title_truncated(self):
        title = generate_group_title("", "KeyError", "k" * 200)
        assert len(title) == 100
        assert title.startswith("KeyError: ")

    def test_empty_message(self):
        assert generate_group_title("") == ""
