"""Configuration management using environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from apple_signin.models.auth import StrategyConfig


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server Configuration
    server_host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8080, description="HTTP server port", ge=1, le=65535)
    cors_allowed_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: str = Field(default="development", description="Environment name")

    # Sign In with Apple
    apple_client_id: str = Field(..., description="Services ID registered with Apple")
    apple_client_secret: SecretStr | None = Field(
        None, description="Pre-generated client secret JWT; generated from the key when unset"
    )
    apple_team_id: str | None = Field(None, description="Apple developer team ID")
    apple_key_id: str | None = Field(None, description="Key ID of the Sign In with Apple key")
    apple_private_key: SecretStr | None = Field(
        None, description="PEM contents of the Sign In with Apple .p8 key"
    )
    apple_default_scope: str = Field(default="name email", description="Default scope")
    apple_uid_field: str = Field(default="uid", description="Profile field used as uid")
    apple_prompt: str | None = Field(None, description="Default prompt parameter")
    apple_access_type: str | None = Field(None, description="Default access_type parameter")
    apple_redirect_base: str | None = Field(
        None, description="Public base URL used to build the callback URL (e.g. https://example.com)"
    )
    apple_token_timeout: float = Field(
        default=10.0, description="Timeout in seconds for calls to Apple", gt=0
    )
    apple_jwks_cache_ttl: int = Field(
        default=3600, description="Apple public key cache TTL in seconds", ge=0
    )

    # State cookie
    state_cookie_name: str = Field(default="apple_signin.state", description="State cookie name")
    state_cookie_secure: bool = Field(
        default=True, description="Send the state cookie only over HTTPS (SameSite=None)"
    )

    @property
    def strategy_config(self) -> StrategyConfig:
        """Returns the immutable StrategyConfig handed to the Apple strategy."""
        client_secret = self.apple_client_secret.get_secret_value() if self.apple_client_secret else None
        private_key = self.apple_private_key.get_secret_value() if self.apple_private_key else None

        if client_secret is None and not (self.apple_team_id and self.apple_key_id and private_key):
            raise ValueError(
                "APPLE_CLIENT_SECRET or APPLE_TEAM_ID, APPLE_KEY_ID and APPLE_PRIVATE_KEY must be configured."
            )

        return StrategyConfig(
            default_scope=self.apple_default_scope,
            uid_field=self.apple_uid_field,
            prompt=self.apple_prompt,
            access_type=self.apple_access_type,
            client_id=self.apple_client_id,
            client_secret=client_secret,
            team_id=self.apple_team_id,
            key_id=self.apple_key_id,
            private_key=private_key,
            redirect_base=self.apple_redirect_base,
            token_timeout=self.apple_token_timeout,
            jwks_cache_ttl=self.apple_jwks_cache_ttl,
        )


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config()  # type: ignore
