"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./community_low.db"
    database_echo: bool = False

    # Redis (read-through cache)
    redis_url: str = "redis://localhost:6379/0"
    price_cache_enabled: bool = True

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 8787

    # ==========================================================================
    # Ingestion / Trust Settings
    # ==========================================================================
    reporter_salt: str = "SALT"
    client_ip_header: str = "CF-Connecting-IP"
    anonymous_identity: str = "0.0.0.0"  # Used when no client address is available
    trust_window_hours: int = 24
    trusted_min_reporters: int = 2  # Distinct reporters needed for Trusted
    min_report_price: float = 10.0  # Reports at or below this are scraping/unit errors
    max_ingest_items: int = 500

    # ==========================================================================
    # Cache TTLs
    # ==========================================================================
    lowest_cache_ttl_seconds: int = 1800  # 30 minutes
    snapshot_cache_ttl_seconds: int = 3600  # 1 hour

    # ==========================================================================
    # Client Settings
    # ==========================================================================
    community_base_url: str = "http://localhost:8787"
    use_community: bool = True
    report_flush_interval_ms: int = 1000
    report_max_batch: int = 100
    client_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
