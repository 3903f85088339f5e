"""Tests for the quill CLI."""

from typer.testing import CliRunner

from quill_engine.cli import app
from quill_engine.tokens.codec import hash_token

runner = CliRunner()


class TestCli:
    def test_token_prints_token_and_hash(self):
        result = runner.invoke(app, ["token"])
        assert result.exit_code == 0
        lines = result.output.split()
        token = lines[lines.index("token") + 1]
        assert hash_token(token) in result.output

    def test_hash_token(self):
        result = runner.invoke(app, ["hash-token", "abc"])
        assert result.exit_code == 0
        assert hash_token("abc") in result.output

    def test_health_unreachable(self):
        result = runner.invoke(app, ["health", "--url", "http://127.0.0.1:9"])
        assert result.exit_code == 1
