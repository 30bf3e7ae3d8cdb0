"""
Shared configuration management for the Token Data Gateway.
"""

from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)


class TokenGatewayConfig(BaseConfig):
    """Token gateway configuration, loaded once at process start."""

    # Upstream provider (Moralis server)
    moralis_server_url: str
    moralis_app_id: str
    chain_id: str = Field(default="8453")
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # Shared secret checked against the authorization header
    secret_token: str = Field(min_length=1)

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=15 * 60, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    rate_limit_redis_url: Optional[str] = Field(default=None)
    trust_proxy_headers: bool = Field(default=False)


def get_config(**overrides) -> TokenGatewayConfig:
    """Build the gateway configuration from the environment."""
    try:
        return TokenGatewayConfig(**overrides)
    except ValidationError as exc:
        missing = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        raise ConfigurationError(
            "Invalid gateway configuration",
            details={"fields": missing}
        ) from exc
