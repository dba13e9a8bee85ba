"""
Identifier generation for issues.

Internal ids are ``is-`` followed by a lowercase ULID: a 48-bit millisecond
timestamp and 80 random bits, encoded as 26 Crockford base32 characters.
They sort by creation time and are never reused. Short ids are four
base36 characters used only for display.
"""

from __future__ import annotations

import re
import secrets
import string
import threading
import time
from collections.abc import Container

ISSUE_PREFIX = "is-"
CROCKFORD_ALPHABET = "0123456789abcdefghjkmnpqrstvwxyz"
SHORT_ID_CHARS = string.digits + string.ascii_lowercase
SHORT_ID_LENGTH = 4

ISSUE_ID_PATTERN = re.compile(rf"^{ISSUE_PREFIX}[{CROCKFORD_ALPHABET}]{{26}}$")

_lock = threading.Lock()
_last_ms = -1
_last_random = 0


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def generate_ulid(now_ms: int | None = None) -> str:
    """
    Generate a lowercase ULID.

    Within one process, ids generated in the same millisecond are made
    monotonic by incrementing the random component.
    """
    global _last_ms, _last_random

    ms = int(time.time() * 1000) if now_ms is None else now_ms
    with _lock:
        if ms <= _last_ms:
            ms = _last_ms
            rand = (_last_random + 1) & ((1 << 80) - 1)
        else:
            rand = secrets.randbits(80)
        _last_ms = ms
        _last_random = rand
    return _encode(ms, 10) + _encode(rand, 16)


def generate_issue_id() -> str:
    """Generate a new internal issue id, e.g. ``is-01hx5zzkbkactav9wevgemmvrz``."""
    return ISSUE_PREFIX + generate_ulid()


def is_issue_id(value: str) -> bool:
    """Check whether a string is a well-formed internal issue id."""
    return bool(ISSUE_ID_PATTERN.match(value))


def generate_short_id(existing: Container[str] = (), max_attempts: int = 20) -> str:
    """
    Generate a random short id that is not already taken.

    Raises:
        RuntimeError: If no free id was found within max_attempts
    """
    for _ in range(max_attempts):
        candidate = "".join(secrets.choice(SHORT_ID_CHARS) for _ in range(SHORT_ID_LENGTH))
        if candidate not in existing:
            return candidate
    raise RuntimeError(f"Could not generate a unique short id after {max_attempts} attempts")
