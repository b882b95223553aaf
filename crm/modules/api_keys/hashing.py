"""
API key hashing utilities.

Keys are high-entropy random strings, so a plain SHA-256 digest is enough for
storage and lookup. The raw key is returned exactly once at creation; only
its hash and a short display prefix are persisted.
"""

import hashlib
import secrets

KEY_PREFIX = "ncrm_"
DISPLAY_PREFIX_LENGTH = 12


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """Return ``(raw_key, key_hash, key_prefix)``."""
    raw_key = f"{KEY_PREFIX}{secrets.token_urlsafe(32)}"
    return raw_key, hash_api_key(raw_key), raw_key[:DISPLAY_PREFIX_LENGTH]
