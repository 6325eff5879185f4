"""Shared configuration management for the invoicing service.

Based on the Pydantic Settings v2 documentation:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoicing-api",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )
    public_app_url: str = Field(
        default="http://localhost:3000",
        description="Public dashboard URL used to build invoice and estimate links",
    )
    default_currency: str = Field(
        default="USD",
        description="Currency code (ISO 4217) used when a document does not set one",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for outbound HTTP calls (database, auth, email)",
    )

    # Database configuration
    database_provider: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Database backend: memory (development/tests), supabase (hosted Postgres)",
    )
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (e.g., https://xyz.supabase.co)",
    )
    supabase_service_key: str = Field(
        default="",
        description="Supabase service-role key (use env var APP_SUPABASE_SERVICE_KEY)",
    )
    supabase_anon_key: str = Field(
        default="",
        description="Supabase anon key, sent as apikey when verifying user tokens",
    )

    # Email configuration
    email_provider: Literal["console", "resend"] = Field(
        default="console",
        description="Email provider: console (log only), resend (Resend REST API)",
    )
    resend_api_key: str = Field(
        default="",
        description="Resend API key (use env var APP_RESEND_API_KEY)",
    )
    resend_base_url: str = Field(
        default="https://api.resend.com",
        description="Resend API base URL",
    )
    email_from_address: str = Field(
        default="noreply@invoicing.example.com",
        description="Sender address used when the business has no verified address",
    )

    # Storage configuration (S3-compatible object storage for logos)
    storage_enabled: bool = Field(
        default=False,
        description="Enable logo storage in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="logos",
        description="Bucket name for uploaded business logos",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )
    logo_max_bytes: int = Field(
        default=2 * 1024 * 1024,
        description="Maximum accepted logo upload size in bytes",
    )

    # Queue configuration (arq / Redis)
    queue_enabled: bool = Field(
        default=False,
        description="Send invoices and reminders through the background worker",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the job queue",
    )
    queue_max_jobs: int = Field(
        default=10,
        description="Maximum concurrent jobs per worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        description="Job timeout in seconds",
    )
    reminder_cron_enabled: bool = Field(
        default=True,
        description="Run the hourly scheduled-reminder dispatch in the worker",
    )

    # Subscription plan limits (free plan)
    free_plan_invoice_limit: int = Field(
        default=5,
        description="Non-draft invoices per calendar month on the free plan",
    )
    free_plan_client_limit: int = Field(
        default=1,
        description="Clients allowed on the free and pay-per-invoice plans",
    )
    free_plan_estimate_limit: int = Field(
        default=1,
        description="Estimates allowed on the free and pay-per-invoice plans",
    )
    free_plan_reminders_per_invoice: int = Field(
        default=4,
        description="Reminders sent per invoice on the free plan",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
