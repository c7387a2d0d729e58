"""
Configuration management using Pydantic settings.
Loads environment variables for the Square catalog API, retry policy, batching and pricing policy.
"""
from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Square API Configuration
    square_location_id: str
    square_app_id: str
    square_access_token: SecretStr
    square_api_base_url: str = "https://connect.squareup.com"
    square_api_version: str = "2025-10-16"
    request_timeout_seconds: float = 30.0

    # Application Configuration
    app_environment: str = "development"
    log_level: str = "INFO"

    # Retry Configuration (retries after the first attempt)
    max_retry_attempts: int = 3
    retry_backoff_multiplier: float = 2.0
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 30.0

    # Batching (Square batch endpoint limits)
    tax_lookup_chunk_size: int = 1000
    delete_chunk_size: int = 200
    upsert_batch_size: int = 1000
    upsert_max_objects_per_request: int = 10000

    # Pricing policy
    target_margin: Decimal = Decimal("0.40")

    # Square tax object ids for each known VAT category
    standard_rate_tax_id: str = ""
    reduced_rate_tax_id: str = ""
    zero_rate_tax_id: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
