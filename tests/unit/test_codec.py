"""Tests for bearer token minting and hashing."""

from quill_engine.tokens.codec import (
    API_KEY_PREFIX,
    compute_checksum,
    hash_token,
    issue,
    issue_api_key,
    matches,
)


class TestTokens:
    def test_issue_returns_token_and_hash(self):
        token, lookup_hash = issue()
        assert len(token) == 64
        int(token, 16)
        assert lookup_hash == hash_token(token)
        assert lookup_hash != token

    def test_tokens_are_unique(self):
        assert len({issue()[0] for _ in range(50)}) == 50

    def test_hash_is_deterministic(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")

    def test_matches(self):
        token, lookup_hash = issue()
        assert matches(token, lookup_hash)
        assert not matches(token + "0", lookup_hash)

    def test_api_key_prefix(self):
        raw, lookup_hash = issue_api_key()
        assert raw.startswith(API_KEY_PREFIX)
        assert hash_token(raw) == lookup_hash

    def test_checksum(self):
        assert compute_checksum(b"") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )
