"""
Cryptographic helpers — API key digests.

API keys are high-entropy random secrets, not user passwords, so a plain
unsalted SHA-256 digest is the lookup key: the same raw key always produces
the same digest and the store can be queried by it directly.
"""

from __future__ import annotations

import hashlib
import hmac


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Args:
        token: The plaintext secret to hash.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def secrets_match(provided: str, expected: str) -> bool:
    """Constant-time comparison of two shared secrets.

    An empty *expected* secret never matches, so an unconfigured secret
    cannot be satisfied by an empty header.
    """
    if not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
