"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PRESENCE_POLICIES = ("window", "flag", "hybrid")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./chat.db",
        description="Async SQLAlchemy connection URL"
    )

    # Redis (ephemeral typing/presence state). Empty means in-process store.
    redis_url: str = Field(default="", description="Redis connection URL")
    redis_password: str = Field(default="", description="Redis password")

    # Identity provider
    identity_jwt_secret: str = Field(
        default="change-me-change-me-change-me-change-me",
        min_length=32,
        description="Secret (or PEM public key) used to verify identity tokens"
    )
    identity_jwt_algorithms: str = Field(
        default="HS256",
        description="Comma-separated list of accepted JWT algorithms"
    )
    identity_jwt_audience: str = Field(default="", description="Expected 'aud' claim (empty to skip)")
    identity_jwt_issuer: str = Field(default="", description="Expected 'iss' claim (empty to skip)")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Presence / typing
    presence_policy: str = Field(default="hybrid", description="Presence policy: window, flag or hybrid")
    online_window_seconds: int = Field(default=30, ge=1, description="Heartbeat freshness window in seconds")
    typing_window_seconds: int = Field(default=5, ge=1, description="Typing indicator expiry in seconds")

    # Messages
    message_page_size: int = Field(default=100, ge=1, description="Default message page size")
    max_message_page_size: int = Field(default=200, ge=1, description="Upper bound for message page size")

    # Rate Limiting
    rate_limit_send_message: str = Field(default="30/minute", description="Send message rate limit per client")

    # WebSocket
    ws_heartbeat_interval: int = Field(default=30, description="WebSocket heartbeat interval in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("presence_policy")
    @classmethod
    def validate_presence_policy(cls, v: str) -> str:
        """Normalize and validate the presence policy name."""
        policy = v.strip().lower()
        if policy not in PRESENCE_POLICIES:
            raise ValueError(f"presence_policy must be one of {', '.join(PRESENCE_POLICIES)}")
        return policy

    def get_allowed_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def get_identity_algorithms(self) -> List[str]:
        """Parse comma-separated JWT algorithms into a list."""
        return [alg.strip() for alg in self.identity_jwt_algorithms.split(",") if alg.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# Global settings instance
settings = Settings()
