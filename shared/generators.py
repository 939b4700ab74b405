"""
Random secret generators — pure, side-effect-free functions.

All generators use the ``secrets`` module.
"""

from __future__ import annotations

import secrets

# Characters of the raw key kept in plaintext for display in key lists
KEY_DISPLAY_PREFIX_LENGTH = 12


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure URL-safe random token.

    Args:
        length: Number of random bytes before base64 encoding (default 32).

    Returns:
        URL-safe base64-encoded token string.
    """
    return secrets.token_urlsafe(length)


def generate_api_key(prefix: str = "wsc_") -> tuple[str, str]:
    """Generate a new prefixed API key.

    Returns:
        ``(raw_key, display_prefix)`` — the full key to hand to the caller once,
        and its first characters for identification in key lists.
    """
    raw_key = f"{prefix}{generate_secure_token(32)}"
    return raw_key, raw_key[:KEY_DISPLAY_PREFIX_LENGTH]
