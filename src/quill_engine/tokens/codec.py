"""
Bearer token codec for signing links and organization API keys.

A bearer token is 32 random bytes rendered as 64 hex chars (256 bits). It is
shown to its holder exactly once; only the SHA-256 lookup hash is stored, so
reading the database never yields a usable token.
"""

import hashlib
import hmac
import secrets

TOKEN_BYTES = 32
API_KEY_PREFIX = "qk_"


def hash_token(token: str) -> str:
    """Deterministic one-way lookup hash for a bearer token."""
    return hashlib.sha256(token.encode()).hexdigest()


def issue() -> tuple[str, str]:
    """Mint a fresh bearer token. Returns (bearer_token, lookup_hash)."""
    token = secrets.token_hex(TOKEN_BYTES)
    return token, hash_token(token)


def issue_api_key() -> tuple[str, str]:
    """Mint an organization API key. Returns (raw_key, lookup_hash)."""
    raw_key = f"{API_KEY_PREFIX}{secrets.token_urlsafe(TOKEN_BYTES)}"
    return raw_key, hash_token(raw_key)


def matches(token: str, lookup_hash: str) -> bool:
    """Constant-time check of a token against a stored hash."""
    return hmac.compare_digest(hash_token(token), lookup_hash)


def compute_checksum(data: bytes) -> str:
    """SHA-256 hex digest of file content."""
    return hashlib.sha256(data).hexdigest()
