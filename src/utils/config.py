"""
Configuration management using pydantic-settings.

Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TAXBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Ledger / FHE backends
    ledger_backend: str = Field(
        default="memory",
        description="Contract backend to use ('memory' runs an in-process mock contract)",
    )
    fhe_backend: str = Field(
        default="mock",
        description="FHE capability to use ('mock' needs no relayer or KMS)",
    )
    contract_address: Optional[str] = Field(
        default=None,
        description="Address of the deployed refund contract (resolved from the backend if unset)",
    )

    # Claim submission
    claim_label: str = Field(
        default="Tax Refund Claim",
        description="Label stored alongside every new claim",
    )
    business_key_prefix: str = Field(
        default="refund-",
        description="Prefix for ledger business keys; the suffix is the creation time in epoch millis",
    )

    # Status projection
    success_display_seconds: float = Field(
        default=2.0,
        description="How long a success status stays visible before reverting to idle",
    )
    error_display_seconds: float = Field(
        default=3.0,
        description="How long an error status stays visible before reverting to idle",
    )

    # Dashboard
    recent_window_days: int = Field(
        default=7,
        description="Claims created within this many days count as recent",
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def public_base_url(self) -> str:
        """Get the local HTTP URL of the API server."""
        return f"http://{self.host}:{self.port}"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading environment on every call.
    """
    return Settings()


# Convenience access
settings = get_settings()
