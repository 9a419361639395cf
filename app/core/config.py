"""Core application configuration and settings.

Handles environment variables for the Doma registry, collateral pricing,
rate limiting and Redis.
"""
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


# Load environment variables
ROOT = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=ROOT / ".env", override=False)
load_dotenv(override=False)

DEFAULT_DOMA_ENDPOINT = "https://api-testnet.doma.xyz/graphql"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Doma registry
    doma_api_endpoint: str = Field(default=DEFAULT_DOMA_ENDPOINT, alias="DOMA_API_ENDPOINT")
    doma_api_key: Optional[str] = Field(default=None, alias="DOMA_API_KEY")
    doma_poll_base_url: str = Field(default="https://api-testnet.doma.xyz", alias="DOMA_POLL_BASE_URL")
    doma_timeout_seconds: float = Field(default=15.0, alias="DOMA_TIMEOUT_SECONDS")

    # Collateral pricing (should come from a price feed in production)
    eth_usd_price: float = Field(default=2800.0, alias="ETH_USD_PRICE")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_window_ms: int = Field(default=60000, alias="RATE_LIMIT_WINDOW_MS")
    rate_limit_max_requests: int = Field(default=30, alias="RATE_LIMIT_MAX_REQUESTS")

    # Redis Configuration
    redis_enabled: bool = Field(default=True, alias="REDIS_ENABLED")
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_password: Optional[str] = Field(default=None, alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, alias="REDIS_DB")

    # Application Settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    port: int = Field(default=3000, alias="PORT")

    # API Settings
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173"
        ],
        alias="CORS_ORIGINS"
    )

    class Config:
        case_sensitive = False
        env_file = ".env"
        populate_by_name = True
        extra = "ignore"

    def validate_required_settings(self):
        """Validate numeric settings and production requirements."""
        if self.eth_usd_price <= 0:
            raise ValueError("ETH_USD_PRICE must be a positive number.")
        if self.rate_limit_window_ms <= 0 or self.rate_limit_max_requests <= 0:
            raise ValueError(
                "RATE_LIMIT_WINDOW_MS and RATE_LIMIT_MAX_REQUESTS must be positive."
            )
        if self.environment == "production" and not self.doma_api_key:
            raise ValueError(
                "DOMA_API_KEY must be set in production; demo data is for development only."
            )


# Global settings instance
settings = Settings()


# Validate settings on module import (only in non-test environments)
if settings.environment != "test":
    try:
        settings.validate_required_settings()
    except ValueError as e:
        print(f"Configuration Error: {e}")
        # Don't raise in development to allow partial setup
        if settings.environment == "production":
            raise
