"""
Configuration management for the storefront session core
"""


import threading

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Commerce API
    commerce_api_url: str = Field(
        default="http://localhost/rest/V1", description="Base URL of the commerce REST API"
    )
    admin_username: str = Field(default="", description="Service account used for the admin token")
    admin_password: str = Field(default="", description="Service account password")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout")

    # Durable storage
    storage_url: str = Field(
        default="sqlite:///data/storefront.db",
        description="SQLAlchemy URL for persistent key/value storage",
    )

    # Cart and cache behaviour
    cart_refresh_interval_seconds: float = Field(
        default=300, gt=0, description="Background customer cart refresh interval"
    )
    category_cache_ttl_seconds: float = Field(default=600, gt=0, description="Category cache TTL")
    product_cache_ttl_seconds: float = Field(default=300, gt=0, description="Product cache TTL")
    currency: str = Field(default="USD", description="Currency code used for display")

    # Application settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="logs", description="Directory for log files")
    environment: str = Field(default="development", description="Application environment")

    @field_validator("commerce_api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_config() -> Settings:
    """Get the global settings instance, ensuring thread safety."""
    global _settings_instance
    if _settings_instance is None:
        with _settings_lock:
            if _settings_instance is None:
                _settings_instance = Settings()
    return _settings_instance


def reset_config() -> None:
    """Drop the cached settings so the next get_config() re-reads the environment."""
    global _settings_instance
    with _settings_lock:
        _settings_instance = None
