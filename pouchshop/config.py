"""
Runtime configuration for PouchShop
All values come from the environment (a local .env file is loaded by main.py)
"""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_KUSTOM_API_BASE_URL = "https://api.playground.kustom.co"
DEFAULT_SITE_BASE_URL = "http://localhost:3000"


class Settings(BaseSettings):
    """Settings read from environment variables"""
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./pouchshop.db")

    # Kustom checkout API
    kustom_merchant_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KUSTOM_PLAYGROUND_MERCHANT_ID", "kustom_merchant_id"),
    )
    kustom_shared_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KUSTOM_PLAYGROUND_SHARED_SECRET", "kustom_shared_secret"),
    )
    kustom_api_base_url: str = Field(default=DEFAULT_KUSTOM_API_BASE_URL)
    kustom_timeout_seconds: float = Field(default=30.0, gt=0)
    site_base_url: str = Field(default=DEFAULT_SITE_BASE_URL)

    # Security
    secret_key: str = Field(default="change-me-in-production")
    access_token_expire_minutes: int = Field(default=30, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Operations
    rate_limit_enabled: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    @validator("log_level")
    def normalize_log_level(cls, v):
        return v.strip().upper()

    @property
    def kustom_configured(self) -> bool:
        return bool(self.kustom_merchant_id and self.kustom_shared_secret)


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, also used as a FastAPI dependency so tests can override it"""
    return Settings()
