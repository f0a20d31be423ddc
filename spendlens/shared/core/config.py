from functools import lru_cache
from threading import Lock
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for the SpendLens billing engine.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "SpendLens"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # Billing line items without a currency are booked in this one.
    BILLING_DEFAULT_CURRENCY: str = "USD"
    # |actual - budget| at or below this is reported as on-target.
    BUDGET_ON_TARGET_TOLERANCE: float = 0.005

    # Tag resolution against the external resolver.
    TAG_RESOLVE_BATCH_SIZE: int = 400
    TAG_RESOLVE_MAX_ATTEMPTS: int = 3
    TAG_RESOLVE_MIN_WAIT_SECONDS: float = 0.1
    TAG_RESOLVE_MAX_WAIT_SECONDS: float = 2.0
    # Tag keys that get a cost-attribution summary card.
    TAG_SUMMARY_KEYS: list[str] = ["org", "product"]

    # Number of memoised dashboard renders kept per dashboard; 0 disables.
    RENDER_CACHE_SIZE: int = 32

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        self._validate_billing_config()
        self._validate_tag_resolution_config()
        if self.RENDER_CACHE_SIZE < 0:
            raise ValueError("RENDER_CACHE_SIZE must be >= 0.")
        return self

    def _validate_billing_config(self) -> None:
        if not self.BILLING_DEFAULT_CURRENCY.strip():
            raise ValueError("BILLING_DEFAULT_CURRENCY must not be empty.")
        self.BILLING_DEFAULT_CURRENCY = self.BILLING_DEFAULT_CURRENCY.strip().upper()
        if self.BUDGET_ON_TARGET_TOLERANCE < 0:
            raise ValueError("BUDGET_ON_TARGET_TOLERANCE must be >= 0.")

    def _validate_tag_resolution_config(self) -> None:
        if self.TAG_RESOLVE_BATCH_SIZE < 1:
            raise ValueError("TAG_RESOLVE_BATCH_SIZE must be >= 1.")
        if self.TAG_RESOLVE_MAX_ATTEMPTS < 1:
            raise ValueError("TAG_RESOLVE_MAX_ATTEMPTS must be >= 1.")
        if self.TAG_RESOLVE_MIN_WAIT_SECONDS < 0:
            raise ValueError("TAG_RESOLVE_MIN_WAIT_SECONDS must be >= 0.")
        if self.TAG_RESOLVE_MAX_WAIT_SECONDS < self.TAG_RESOLVE_MIN_WAIT_SECONDS:
            raise ValueError(
                "TAG_RESOLVE_MAX_WAIT_SECONDS must be >= TAG_RESOLVE_MIN_WAIT_SECONDS."
            )
        self.TAG_SUMMARY_KEYS = [
            key.strip().lower() for key in self.TAG_SUMMARY_KEYS if key.strip()
        ]

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION
