"""Quill-Engine configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "hmac_key": "insecure-hmac-key-change-me",
    "super_admin_key": "insecure-super-admin-key-change-me",
}


class QuillSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="QUILL_")

    environment: str = "development"
    log_level: str = "INFO"

    # Audit chain keyring — JSON dict mapping version (int) to key string.
    # e.g. '{"0": "old-key", "1": "new-key"}'
    # When set, hmac_key is ignored.  When empty, hmac_key is used as version 0.
    hmac_key: str = "insecure-hmac-key-change-me"
    hmac_keys: str = ""

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/quill.db"

    # API
    api_title: str = "Quill-Engine"
    api_version: str = "0.1.0"
    super_admin_key: str = "insecure-super-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Signing links are built as {public_base_url}/sign/{token}
    public_base_url: str = "http://localhost:5173"

    # Document defaults
    default_expiration_days: int = 30
    reminder_default_days: int = 2

    # Limits
    max_upload_bytes: int = 5 * 1024 * 1024  # 5 MiB
    max_field_value_chars: int = 1_000_000

    # Blob storage
    storage_dir: str = "./data/uploads"

    # Email delivery ("sendgrid", "resend", or empty to log only)
    email_provider: str = ""
    email_api_key: str = ""
    email_from: str = "signatures@quill.local"
    email_from_name: str = "Quill"

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def hmac_keyring(self) -> dict[int, str]:
        """Return the audit HMAC keyring as {version_int: key_str}."""
        if self.hmac_keys:
            try:
                raw = json.loads(self.hmac_keys)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ValueError(
                    f"QUILL_HMAC_KEYS must be valid JSON (e.g. '{{\"0\": \"key\"}}'), got: {self.hmac_keys!r}"
                ) from exc
            return {int(k): v for k, v in raw.items()}
        return {0: self.hmac_key}

    @property
    def current_hmac_version(self) -> int:
        return max(self.hmac_keyring.keys())

    @property
    def current_hmac_key(self) -> str:
        ring = self.hmac_keyring
        return ring[max(ring.keys())]

    @property
    def signing_url_base(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/sign"

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"QUILL_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys — set QUILL_HMAC_KEY and "
                "QUILL_SUPER_ADMIN_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> QuillSettings:
    settings = QuillSettings()
    settings.validate_for_production()
    return settings
