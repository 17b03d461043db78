from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./shareasecret.db"

    # Public URL used when building viewing/management links
    base_url: str = "http://localhost:8994"

    # Secrets
    allowed_ttls: list[int] | str = [3600, 86400, 259200, 604800]  # 1h, 1d, 3d, 7d
    max_cipher_text_length: int = 1_000_000  # 1MB
    identifier_attempts: int = 3
    ttl_gates_visibility: bool = False

    # Expiry sweeper
    scheduler_enabled: bool = True
    cleanup_interval_minutes: int = 5

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"

    # Notifications
    cookie_secure: bool = False

    # Alerts
    discord_alerts_webhook_url: str | None = None

    # CORS
    cors_origins: list[str] | str = ["http://localhost:8994", "http://127.0.0.1:8994"]

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("allowed_ttls", mode="before")
    @classmethod
    def parse_allowed_ttls(cls, v):
        """Parse allowed TTLs from comma-separated string or list."""
        if isinstance(v, str):
            return [int(ttl.strip()) for ttl in v.split(",") if ttl.strip()]
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


settings = Settings()
