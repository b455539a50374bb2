"""Configuration settings for FHIR Orchestration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment (prefixed with
    ``FHIR_ORCHESTRATION_``) and from an optional ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="FHIR_ORCHESTRATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "FHIR Orchestration"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "console"

    # Remote validator
    remote_validator_url: str = Field(
        default="https://validator.fhir.org/validate",
        description="Endpoint of the HL7 official validator API",
    )
    remote_validator_timeout: float = Field(
        default=120.0,
        description="Connect and request timeout for the remote validator, in seconds",
    )

    # Reference resource fetch
    resource_fetch_timeout: Optional[float] = Field(
        default=None,
        description="Timeout for profile and reference resource downloads; None disables it",
    )

    # FHIR
    fhir_version: str = "4.0.1"
    validation_locale: str = "en"

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Only console and json renderers are supported."""
        if v not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
