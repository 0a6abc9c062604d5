# GrantCore - Embeddable OAuth2/OIDC Grant Engine
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Engine settings loaded from the environment with Pydantic Settings."""

from beartype import beartype
from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Default issuer, audience, signing and expiry settings.

    These values seed the per-request ``ServerConfig``; embedders can still
    override any of them per call through the ``get_config`` capability.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRANT_CORE_",
        env_file=None,
        env_file_encoding="utf-8",
        frozen=True,
        validate_default=True,
        extra="forbid",
    )

    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Deployment environment",
    )

    # Token identity
    issuer: str = Field(
        default="https://auth.example.com",
        min_length=1,
        description="Value of the 'iss' claim of minted tokens",
    )
    audience: str = Field(
        default="https://api.example.com",
        min_length=1,
        description="Value of the 'aud' claim of minted tokens",
    )

    # Signing
    jwt_secret: str = Field(
        default="test-jwt-secret-for-testing-only-never-use-in-production-32-chars",
        min_length=32,
        description="Secret used to sign self-describing tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        pattern="^HS(256|384|512)$",
        description="JWT signing algorithm",
    )

    # Expiry windows in seconds
    access_token_expiry: int = Field(
        default=3600,
        description="Access token lifetime in seconds",
    )
    id_token_expiry: int = Field(
        default=3600,
        description="ID token lifetime in seconds",
    )
    refresh_token_expiry: int = Field(
        default=30 * 24 * 3600,
        description="Refresh token lifetime in seconds",
    )
    authorization_code_expiry: int = Field(
        default=600,
        ge=1,
        le=3600,
        description="Authorization code lifetime in seconds",
    )

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Root log level applied by configure_logging",
    )

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls: type["Settings"], v: str, info: ValidationInfo) -> str:
        """Ensure test JWT secrets are not used in production."""
        if info.data.get("environment") == "production" and v.startswith("test-"):
            raise ValueError(
                "Test JWT secret cannot be used in production. "
                "Set GRANT_CORE_JWT_SECRET environment variable."
            )
        return v

    @property
    @beartype
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


_settings: Settings | None = None


@beartype
def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


@beartype
def clear_settings_cache() -> None:
    """Clear settings cache (for testing)."""
    global _settings
    _settings = None
