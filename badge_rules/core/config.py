"""Application configuration using Pydantic Settings.

This project loads configuration from environment variables.

Optionally, you may point `ENV_FILE` at a local env file (for development).
"""

import os
from enum import Enum

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    Every value has a default so the rule model can be used as a library
    without any environment set up.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "badge-rules-api"
    app_log_level: str = "INFO"

    # Observability
    observability_enabled: bool = True
    observability_structured_logs: bool = True
    observability_request_id_header: str = "X-Request-ID"

    # Token for protecting /metrics endpoint
    metrics_token: str | None = None

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # Rule tree limits
    rules_max_depth: int = Field(default=10, ge=1)
    rules_max_conditions: int = Field(default=1000, ge=1)
    rules_max_list_values: int = Field(default=100, ge=1)
    rules_allow_unknown_fields: bool = False

    # Extra field definitions merged into the preset registry (JSON file)
    field_registry_file: str | None = None

    # Canvas layout (Tree -> Graph)
    canvas_origin_x: float = 100.0
    canvas_origin_y: float = 100.0
    canvas_spacing_x: float = 250.0
    canvas_spacing_y: float = 80.0

    # Rule persistence API
    rule_storage_base_url: str = "http://localhost:8080/api"
    rule_storage_token: str | None = None
    rule_storage_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError as e:
            raise ValueError(
                f"app_env must be one of {[env.value for env in AppEnvironment]}, got '{v}'"
            ) from e

    @field_validator("rule_storage_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """
        Validate production-specific settings.

        These checks prevent insecure configurations from being deployed to production.
        """
        if self.app_env == AppEnvironment.PROD:
            if not self.rule_storage_base_url.startswith("https://"):
                raise ValueError("RULE_STORAGE_BASE_URL must use HTTPS in production")

            for origin in self.cors_origins_list:
                if "localhost" in origin or "127.0.0.1" in origin:
                    raise ValueError(
                        f"CORS origins must not contain localhost in production: {origin}"
                    )

        return self


settings = Settings()
