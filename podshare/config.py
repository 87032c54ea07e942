"""
Configuration management for podshare.

This module uses Pydantic's BaseSettings to manage configuration
through environment variables. It provides a centralized and typed
way to handle pod layout, transport and CLI settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    These settings are loaded from environment variables prefixed with
    ``PODSHARE_`` (or a local ``.env`` file).
    """

    # Transport
    HTTP_TIMEOUT_S: float = 10.0  # per call
    VERIFY_TLS: bool = True

    # Pod layout (relative to a principal's storage root)
    PROFILE_DOCUMENT: str = "profile/card#me"
    ACR_SUFFIX: str = ".acr"
    LOGS_DIR: str = "solidtasks/logs/"
    PERMISSION_LOG_FILE: str = "permissions-log.ttl"
    OUTBOX_DIR: str = "solidtasks/outbox/"

    # App-scoped sharing
    OFFICIAL_CLIENT_ID: str = "https://clients.example.org/solidtasks-web#client"

    # Audit replication
    AUDIT_FANOUT_LIMIT: int = 3

    # CLI session (the real login flow lives outside this package)
    WEBID: str | None = None
    ACCESS_TOKEN: str | None = None
    DPOP_PROOF: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="PODSHARE_",
        extra="ignore",
    )


# Global settings instance
settings = Settings()
