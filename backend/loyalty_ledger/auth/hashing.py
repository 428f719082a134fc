"""
API key hashing and extraction utilities.

Security notes:
  • SHA-256 is a one-way digest — acceptable for API keys because they are
    high-entropy random strings, not passwords.
  • Raw keys use the sk_live_ prefix (convention, not security).
  • generate_api_key() returns the raw key exactly once. It is never stored.
"""

import hashlib
import secrets

_KEY_PREFIX = "sk_live_"
_DISPLAY_PREFIX_LEN = 12


def hash_api_key(raw_key: str) -> str:
    """Hex SHA-256 digest of a raw API key, used for storage and lookup."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def display_prefix(raw_key: str) -> str:
    """Leading characters kept in clear text to identify a key in the UI."""
    return raw_key[:_DISPLAY_PREFIX_LEN]


def generate_api_key() -> tuple[str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, key_hash) — raw_key is shown once, key_hash is stored.
    """
    raw_key = f"{_KEY_PREFIX}{secrets.token_hex(32)}"  # 256 bits
    return raw_key, hash_api_key(raw_key)


def extract_api_key(
    authorization: str | None,
    x_api_key: str | None,
) -> str | None:
    """
    Pull the raw key from `Authorization: Bearer <key>`, falling back to
    the `X-API-Key` header. Returns None when neither carries a key.
    """
    if authorization:
        parts = authorization.split(" ", maxsplit=1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
            return parts[1].strip()
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    return None
