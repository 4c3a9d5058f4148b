"""SHA-256 helpers shared by the verifier, comparator and publisher."""

from __future__ import annotations

import hashlib
import re

_SHA256_HEX_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def is_valid_sha256(value: str) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_SHA256_HEX_RE.match(strip_hex_prefix(value)))


def same_digest(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return left is right
    return strip_hex_prefix(left).lower() == strip_hex_prefix(right).lower()


def verify_hash(content: bytes | str, expected_hash: str) -> bool:
    """Return True when the SHA-256 of ``content`` equals ``expected_hash``.

    Text is hashed as UTF-8. The comparison ignores hex case and an optional
    ``0x`` prefix on the expected value.
    """
    actual = hash_text(content) if isinstance(content, str) else hash_bytes(content)
    return same_digest(actual, expected_hash)
