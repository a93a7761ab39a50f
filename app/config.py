"""
Configuration management.
Simple .env based config for VPS deployment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Security
    session_secret: str = "change-me-in-production-use-random-string"
    admin_password_hash: str = ""  # bcrypt hash

    # Database
    database_path: str = "./data/app.db"

    # Ginee marketplace integration
    ginee_base_url: str = "https://api.ginee.com"
    ginee_api_token: str = ""
    ginee_timeout_seconds: float = 30.0
    # False on staging: full-catalog sync only runs as a dry run
    ginee_live_sync_enabled: bool = True

    # Sync-all lease, renewed after every product
    sync_lease_ttl_seconds: int = 900

    # Logging
    log_level: str = "INFO"


# Global settings instance
settings = Settings()
