"""
Configuration module for the MediFlow care coordination service.
Loads settings from environment variables with Azure OpenAI support.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Azure OpenAI Configuration
    azure_openai_endpoint: str = Field(
        default="",
        alias="AZURE_OPENAI_ENDPOINT",
        description="Azure OpenAI endpoint URL"
    )
    azure_openai_deployment: str = Field(
        default="gpt-4o",
        alias="AZURE_OPENAI_DEPLOYMENT",
        description="Azure OpenAI deployment name"
    )
    azure_openai_api_version: str = Field(
        default="2024-10-21",
        alias="AZURE_OPENAI_API_VERSION",
        description="Azure OpenAI API version (chat completions)"
    )
    azure_openai_api_key: str = Field(
        default="",
        alias="AZURE_OPENAI_API_KEY",
        description="Optional API key; DefaultAzureCredential is used when empty"
    )

    # AI call budget
    ai_timeout_seconds: float = Field(
        default=8.0,
        alias="AI_TIMEOUT_SECONDS",
        description="Per-attempt timeout for AI calls"
    )
    ai_max_retries: int = Field(
        default=2,
        alias="AI_MAX_RETRIES",
        description="Retries after the first attempt for transient AI failures"
    )
    ai_backoff_initial_seconds: float = Field(
        default=0.5,
        alias="AI_BACKOFF_INITIAL_SECONDS",
        description="First exponential backoff delay"
    )
    ai_backoff_max_seconds: float = Field(
        default=4.0,
        alias="AI_BACKOFF_MAX_SECONDS",
        description="Maximum single backoff delay"
    )

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )

    # Data Store Configuration
    storage_backend: str = Field(
        default="cosmos",
        alias="STORAGE_BACKEND",
        description="'cosmos' for Azure Cosmos DB, 'memory' for a process-local store"
    )
    seed_sample_data: bool = Field(
        default=False,
        alias="SEED_SAMPLE_DATA",
        description="Load sample doctors and patient records into the memory backend"
    )

    # Scheduling
    clinic_timezone: str = Field(
        default="UTC",
        alias="CLINIC_TIMEZONE",
        description="IANA timezone in which availability hours are expressed"
    )
    booking_policy: str = Field(
        default="soft_hold",
        alias="BOOKING_POLICY",
        description="'soft_hold' (claim slot on confirm) or 'exclusive' (claim slot on request)"
    )

    # Timeline projection
    outbox_poll_interval_seconds: float = Field(
        default=5.0,
        alias="OUTBOX_POLL_INTERVAL_SECONDS",
        description="How often the outbox relay re-delivers pending events"
    )
    timeline_record_reports: bool = Field(
        default=True,
        alias="TIMELINE_RECORD_REPORTS",
        description="Reference newly generated reports in the patient timeline"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
