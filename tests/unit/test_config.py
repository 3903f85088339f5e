"""Tests for settings."""

import pytest

from quill_engine.common.config import QuillSettings


class TestSettings:
    def test_signing_url_base(self):
        settings = QuillSettings(public_base_url="https://app.quill.test/")
        assert settings.signing_url_base == "https://app.quill.test/sign"

    def test_keyring_defaults_to_single_key(self):
        settings = QuillSettings(hmac_key="k0", hmac_keys="")
        assert settings.hmac_keyring == {0: "k0"}
        assert settings.current_hmac_key == "k0"

    def test_keyring_current_is_highest_version(self):
        settings = QuillSettings(hmac_keys='{"0": "old", "3": "new"}')
        assert settings.current_hmac_version == 3
        assert settings.current_hmac_key == "new"

    def test_production_refuses_insecure_defaults(self):
        settings = QuillSettings(
            environment="production",
            hmac_key="insecure-hmac-key-change-me",
            super_admin_key="insecure-super-admin-key-change-me",
        )
        with pytest.raises(RuntimeError):
            settings.validate_for_production()

    def test_development_warns_on_insecure_defaults(self):
        settings = QuillSettings(
            environment="development",
            hmac_key="insecure-hmac-key-change-me",
            super_admin_key="x",
        )
        with pytest.warns(UserWarning):
            settings.validate_for_production()
