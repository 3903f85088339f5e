"""Quill-Engine: signature document routing and signing engine."""

from quill_engine.tokens.codec import hash_token, issue

__all__ = [
    "hash_token",
    "issue",
]
__version__ = "0.1.0"
