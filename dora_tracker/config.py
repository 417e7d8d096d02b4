"""
Application configuration management.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # Redis
    redis_url: str

    # GitHub
    github_token: str
    github_api_url: str = "https://api.github.com"
    github_org: Optional[str] = None
    github_max_concurrency: int = 10

    # Google Docs release logs
    google_credentials_file: str = "google.json"
    uat_doc_id: Optional[str] = None
    prod_doc_id: Optional[str] = None

    # Webhook
    webhook_secret: str
    workflow_name_filter: str = "docker"

    # Admin API
    admin_api_key: Optional[str] = None  # Falls back to webhook_secret if not set

    # Application
    log_level: str = "INFO"
    job_poll_timeout_seconds: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
