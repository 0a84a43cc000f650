"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/peddler.db"

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"
    app_host: str = "0.0.0.0"
    app_port: int = 8002

    # Watcher definitions and secrets
    watchers_config_path: str = "config/watchers.json"
    secrets_path: str = "config/secrets.json"
    config_cache_ttl_seconds: int = 300  # 5 minutes

    # Scheduler
    schedule_interval_minutes: int = 15
    max_concurrent_watchers: int = 5  # Wave size
    wave_cooldown_seconds: float = 2.0  # Pause between waves

    # ==========================================================================
    # Source Collector Settings
    # ==========================================================================
    collector_timeout_seconds: float = 60.0  # Per collect() call
    collector_max_attempts: int = 3
    collector_backoff_seconds: float = 2.0  # Doubles on each retry

    # Headless browser
    headless: bool = True
    browser_navigation_timeout_ms: int = 30000
    browser_feed_timeout_ms: int = 10000
    browser_scroll_pause_ms: int = 2000

    # ==========================================================================
    # Notification Settings
    # ==========================================================================
    notification_timeout_seconds: float = 10.0  # Per send() call
    notification_max_attempts: int = 3
    notification_backoff_seconds: float = 1.0

    # ==========================================================================
    # Item Retention
    # ==========================================================================
    item_retention_days: int = 30
    purge_interval_hours: int = 6

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
