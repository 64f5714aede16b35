"""Service configuration using pydantic-settings.

This module defines the TaskhookSettings class that reads configuration
from environment variables with the TASKHOOK_ prefix. Every field has a
default so the service starts with no environment at all: without a
database URL tasks are kept in memory, and without an LLM URL commits
are classified by keyword matching.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaskhookSettings(BaseSettings):
    """Webhook service configuration from environment variables.

    All environment variables are prefixed with TASKHOOK_ (e.g., TASKHOOK_WEBHOOK_SECRET).

    Fields that change behavior when left unset:
    - webhook_secret: empty disables signature verification (insecure)
    - llm_url: unset selects the keyword classifier
    - database_url: unset selects the in-memory task store
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKHOOK_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Webhook Configuration
    # -------------------------------------------------------------------------
    # Shared secret for HMAC-SHA256 request signatures
    webhook_secret: str = ""

    # Providers accepted on POST /webhooks/<provider>
    webhook_providers: List[str] = ["github"]

    # -------------------------------------------------------------------------
    # Classifier Configuration
    # -------------------------------------------------------------------------
    # URL of an OpenAI-compatible endpoint for commit classification
    llm_url: Optional[str] = None

    # Model name for LLM inference
    llm_model: str = "llama3-8b-8192"

    # API key sent to the LLM endpoint
    llm_api_key: str = "not-needed"

    # Upper bound on classifying a single commit
    classifier_timeout_seconds: float = 10.0

    # -------------------------------------------------------------------------
    # Database Configuration
    # -------------------------------------------------------------------------
    # PostgreSQL connection string for task persistence
    database_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    # Host address to bind the server to
    host: str = "0.0.0.0"

    # Port number for the server
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("webhook_providers")
    @classmethod
    def validate_webhook_providers(cls, v: List[str]) -> List[str]:
        """Normalize provider names and reject empty ones."""
        providers = [p.strip().lower() for p in v]
        if not providers or any(not p for p in providers):
            raise ValueError("webhook_providers must contain non-empty names")
        return providers

    @field_validator("llm_url")
    @classmethod
    def validate_llm_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that LLM URL, when set, is a valid URL format."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("llm_url must start with http:// or https://")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that database URL, when set, has a valid format."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("classifier_timeout_seconds")
    @classmethod
    def validate_classifier_timeout(cls, v: float) -> float:
        """Validate that classifier timeout is positive."""
        if v <= 0:
            raise ValueError("classifier_timeout_seconds must be positive")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def get_settings() -> TaskhookSettings:
    """Create and return TaskhookSettings instance.

    Returns:
        TaskhookSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a configured value is invalid.
    """
    return TaskhookSettings()
