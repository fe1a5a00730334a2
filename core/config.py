"""
Configuration settings for the workflow execution engine.
"""
from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Database settings
    database_path: str = Field(
        default="workflow_engine.db",
        description="SQLite database file holding runs, graphs, webhooks and entities"
    )

    # Callback settings
    base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL used to build worker callback URLs"
    )

    # Deployment profile
    environment: str = Field(
        default="development",
        description="Deployment profile; 'production' enables hardened webhook checks"
    )

    # Worker dispatch
    worker_dispatch_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for the outbound worker dispatch call"
    )

    # Webhook settings
    webhook_max_age_seconds: int = Field(
        default=300,
        description="Freshness window in seconds for timestamped webhook signatures"
    )

    # Parallel execution
    collector_failure_policy: Literal["fail", "partial"] = Field(
        default="fail",
        description="Default Collector policy when a parallel instance fails"
    )

    # Application settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="detailed",
        description="Log format style (simple, detailed, json)"
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_hardened(self) -> bool:
        """Whether the hardened deployment profile is active."""
        return self.environment.lower() == "production"


# Create global settings instance
settings = Settings()
