"""Configuration settings for the infrastructure discovery service."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Azure identity (the live API scanner falls back to these)
    AZURE_SUBSCRIPTION_ID: str | None = Field(default=None, description="Azure subscription ID")
    AZURE_TENANT_ID: str | None = Field(default=None, description="Azure tenant ID")
    AZURE_CLIENT_ID: str | None = Field(default=None, description="Service principal or managed identity client ID")
    AZURE_CLIENT_SECRET: str | None = Field(default=None, description="Service principal secret")

    # Application settings
    ENVIRONMENT: str = Field(default="development", description="Environment name")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="CORS allowed origins"
    )

    # Discovery
    DISCOVERY_ROOT: str = Field(default=".", description="Directory the HTTP surface may read from")
    DISCOVERY_SKIP_DIRS: List[str] = Field(
        default=[".git", ".terraform", "node_modules"],
        description="Directory names never walked"
    )

    # Live API credential probing
    CREDENTIAL_PROBE_TIMEOUT_SECONDS: float = Field(default=10.0, description="Auto-detect credential probe bound")
    CREDENTIAL_VALIDATE_TIMEOUT_SECONDS: float = Field(default=30.0, description="Validate credential probe bound")
    AZURE_MANAGEMENT_SCOPE: str = Field(
        default="https://management.azure.com/.default",
        description="Token scope used to verify credentials"
    )


# Global settings instance
settings = Settings()
