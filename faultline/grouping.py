"""
Fingerprinting rules for grouping events into issues.

Everything here is pure: no I/O, same input, same output.
"""

import hashlib
import re
from typing import Optional, Sequence

FINGERPRINT_DELIMITER = "::"
TITLE_MAX_LENGTH = 100

# Order matters: UUIDs and hex literals go first, bare numbers only match
# whole words so they leave the placeholders alone.
_UUID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
_HEX_RE = re.compile(r"0x[0-9a-f]+", re.IGNORECASE)
_DIGITS_RE = re.compile(r"\b\d+\b")
_QUOTED_RE = re.compile(r"[\"'][^\"']+[\"']")
_WHITESPACE_RE = re.compile(r"\s+")


def fingerprint_hash(tokens: Sequence[str]) -> str:
    """
    Deterministic grouping key for a fingerprint: SHA-256 hex digest of
    the tokens joined with "::".
    """
    joined = FINGERPRINT_DELIMITER.join(tokens)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def normalize_message(message: str) -> str:
    """
    Strip volatile parts of an error message so that the same symptom
    produces the same text.

        "User 42 not found in 'users'"  ->  "User N not found in \"...\""
    """
    normalized = _UUID_RE.sub("UUID", message)
    normalized = _HEX_RE.sub("0xHEX", normalized)
    normalized = _DIGITS_RE.sub("N", normalized)
    normalized = _QUOTED_RE.sub('"..."', normalized)
    normalized = _WHITESPACE_RE.sub(" ", normalized)
    return normalized.strip()


def symptom_fingerprint(error_type: str, message: str, platform: Optional[str] = None) -> list[str]:
    """Fingerprint derived from free text rather than a client-supplied array."""
    tokens = [error_type, normalize_message(message)]
    if platform:
        tokens.append(platform)
    return tokens


def generate_group_title(
    message: str,
    exception_type: Optional[str] = None,
    exception_value: Optional[str] = None,
) -> str:
    """
    Human-readable issue title.

    "{type}: {value}" when the event carries both exception fields,
    otherwise the message. Capped at 100 characters either way.
    """
    if exception_type and exception_value:
        title = f"{exception_type}: {exception_value}"
    else:
        title = message or ""
    return title[:TITLE_MAX_LENGTH]
