"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Documentation of available settings
4. Proper defaults
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - SQLite file in the working directory by default, PostgreSQL in production
    database_url: str = "sqlite:///./pos.db"

    # Security
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # one POS shift

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ==========================================================================
    # Order lifecycle
    # ==========================================================================
    # Orders from these sources skip "pending" and go straight to the kitchen
    auto_accept_order_sources: str = "pos"
    # Only orders from these sources may have their items edited
    editable_order_sources: str = "pos,phone"
    # Tax applied to new orders when the request does not carry one (percent)
    default_tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    # When true, removals from pending orders also wait for a kitchen decision
    queue_removals_for_pending_orders: bool = False

    # ==========================================================================
    # Cancelled items (kitchen waste/return queue)
    # ==========================================================================
    cancelled_item_expiry_hours: int = Field(default=24, gt=0)
    # 0 disables the in-process sweep; an external scheduler calls /kitchen/auto-expire
    auto_expire_interval_minutes: int = Field(default=0, ge=0)

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == "change-me-in-production":
            import warnings
            warnings.warn(
                "Using default SECRET_KEY is insecure! Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Refuse to start in production mode with a weak secret key."""
        if not self.debug:
            if self.secret_key == "change-me-in-production":
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)})."
                )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def auto_accept_sources(self) -> List[str]:
        """Order sources whose orders start in_progress."""
        return [s.strip().lower() for s in self.auto_accept_order_sources.split(",") if s.strip()]

    @property
    def editable_sources(self) -> List[str]:
        """Order sources whose items may be edited."""
        return [s.strip().lower() for s in self.editable_order_sources.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
