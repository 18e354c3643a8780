"""Chunk fingerprints and size estimates."""

import hashlib
import math


def fingerprint(content: str) -> str:
    """SHA-256 of the UTF-8 bytes, as lowercase hex."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def estimate_tokens(content: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(content) / 4)
