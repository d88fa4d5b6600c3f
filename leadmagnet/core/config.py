# leadmagnet/core/config.py
from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leadmagnet.core.constants import DEFAULT_ASSET_ID


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")

    # Server
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS
    allowed_origins: str = Field(default="http://localhost:4321,http://127.0.0.1:4321", validation_alias="ALLOWED_ORIGINS")
    allowed_methods: str = Field(default="GET,POST,OPTIONS", validation_alias="ALLOWED_METHODS")
    allowed_headers: str = Field(default="*", validation_alias="ALLOWED_HEADERS")

    # Airtable (validated on first use, not at boot)
    airtable_api_token: Optional[str] = Field(default=None, validation_alias="AIRTABLE_API_TOKEN")
    airtable_base_id: Optional[str] = Field(default=None, validation_alias="AIRTABLE_BASE_ID")
    airtable_leads_table: Optional[str] = Field(default=None, validation_alias="AIRTABLE_LEADS_TABLE")
    airtable_api_base: str = Field(default="https://api.airtable.com/v0", validation_alias="AIRTABLE_API_BASE")
    airtable_timeout_seconds: float = Field(default=10.0, validation_alias="AIRTABLE_TIMEOUT_SECONDS")

    # Lead magnet
    lead_magnet_asset_id: str = Field(default=DEFAULT_ASSET_ID, validation_alias="LEAD_MAGNET_ASSET_ID")

    # Monitoring
    sentry_dsn: Optional[str] = Field(default=None, validation_alias="SENTRY_DSN")

    @field_validator("environment")
    def validate_environment(cls, v):
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("airtable_api_token", "airtable_base_id", "airtable_leads_table", mode="before")
    def strip_airtable_values(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    def origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def methods(self) -> List[str]:
        return [method.strip() for method in self.allowed_methods.split(",") if method.strip()]


settings = Settings()
