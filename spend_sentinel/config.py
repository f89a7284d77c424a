"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Persistence
    storage_backend: str = "json"  # json | sql | memory
    data_dir: str = "./data"
    database_url: str = "sqlite:///./spend_sentinel.db"

    # External Services
    feed_api_base: str = "http://localhost:8001"

    # Service
    service_name: str = "spend-sentinel"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 5.0

    # Balance alerts (currency units)
    low_balance_threshold: float = 100.0
    large_withdrawal_threshold: float = 500.0
    large_deposit_threshold: float = 1000.0
    overdraft_buffer: float = 50.0

    # Recurring payments and mandates
    missed_payment_grace_days: int = 3
    price_change_threshold_percent: float = 5.0
    max_price_history: int = 24
    max_collection_history: int = 24

    # Alert deduplication and retention
    alert_dedup_hours: int = 24
    missed_alert_dedup_days: int = 30
    max_alert_history: int = 500
    max_price_alerts: int = 100

    # Budgets
    rollover_cap_ratio: float = 0.5

    # Forecasting
    protected_balance_floor: float = 100.0
    forecast_confidence_cap: float = 0.85


settings = Settings()
