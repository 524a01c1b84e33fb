"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Centralised settings: no hardcoded values anywhere else."""

    # Database
    database_url: str = Field(..., env="DATABASE_URL")

    # CORS
    allowed_origins: str = Field(
        "http://localhost:3000",
        env="ALLOWED_ORIGINS",
    )

    # App
    app_env: str = Field("development", env="APP_ENV")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    # Checkout pricing
    tax_rate: float = Field(0.08, ge=0, env="TAX_RATE")
    service_fee: float = Field(2.0, ge=0, env="SERVICE_FEE")
    delivery_fee: float = Field(4.99, ge=0, env="DELIVERY_FEE")

    # Loyalty
    loyalty_points_ttl_days: int = Field(365, ge=1, env="LOYALTY_POINTS_TTL_DAYS")
    loyalty_expiry_warning_days: int = Field(30, ge=1, env="LOYALTY_EXPIRY_WARNING_DAYS")

    # Notifications
    notification_ttl_days: int = Field(30, ge=1, env="NOTIFICATION_TTL_DAYS")

    # Inventory
    expiry_alert_days: int = Field(7, ge=1, env="EXPIRY_ALERT_DAYS")

    # Reviews
    review_edit_window_hours: int = Field(24, ge=0, env="REVIEW_EDIT_WINDOW_HOURS")
    review_report_threshold: int = Field(5, ge=1, env="REVIEW_REPORT_THRESHOLD")

    # Reporting
    dashboard_cache_ttl_seconds: int = Field(60, ge=1, env="DASHBOARD_CACHE_TTL_SECONDS")

    # System settings
    settings_cache_ttl_seconds: int = Field(30, ge=1, env="SETTINGS_CACHE_TTL_SECONDS")

    # Derived
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list."""
        return [o.strip() for o in self.allowed_origins.split(",")]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = get_settings()
