from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Keys of a token endpoint response that map onto TokenResult fields.
_STANDARD_TOKEN_KEYS = frozenset(
    {"access_token", "refresh_token", "expires_at", "expires_in", "token_type"}
)


class StrategyConfig(BaseModel):
    """
    Static strategy configuration, built once at startup and shared read-only by all requests.
    """

    model_config = ConfigDict(frozen=True)

    default_scope: str = "name email"
    uid_field: str = "uid"
    prompt: str | None = None
    access_type: str | None = None
    client_id: str
    client_secret: str | None = None
    team_id: str | None = None
    key_id: str | None = None
    private_key: str | None = Field(None, repr=False)
    redirect_base: str | None = None
    token_timeout: float = 10.0
    jwks_cache_ttl: int = 3600


class RequestOptions(BaseModel):
    """Authorize-URL parameters computed for a single request phase."""

    scope: str
    prompt: str | None = None
    access_type: str | None = None
    response_mode: str | None = None
    state: str

    def as_params(self) -> dict[str, str]:
        """Returns the non-empty parameters in insertion order."""
        return {key: value for key, value in self.model_dump().items() if value is not None}


class TokenResult(BaseModel):
    """
    OAuth2 token-exchange response.

    Provider specific values, such as Apple's `id_token` and the granted `scope`,
    are kept in `other_params`.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    token_type: str | None = None
    other_params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, token: Mapping[str, Any]) -> "TokenResult":
        """Builds a TokenResult from a token endpoint response (or an authlib OAuth2Token)."""
        expires_at = token.get("expires_at")
        return cls(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            expires_at=int(expires_at) if expires_at is not None else None,
            token_type=token.get("token_type"),
            other_params={k: v for k, v in token.items() if k not in _STANDARD_TOKEN_KEYS},
        )


class CallbackState(BaseModel):
    """
    Request-scoped record of what a successful callback produced.

    Both fields stay None until the code exchange succeeds and are reset by cleanup.
    """

    token: TokenResult | None = None
    user: dict[str, Any] | None = None


class AuthFailure(BaseModel):
    """A single failure recorded during the callback phase."""

    message_key: str = Field(..., description="Machine readable error key")
    message: str = Field(..., description="Human-readable error message")


class Credentials(BaseModel):
    token: str | None = None
    refresh_token: str | None = None
    expires: bool = False
    expires_at: int | None = None
    scopes: list[str] = Field(default_factory=list)
    token_type: str | None = None


class Info(BaseModel):
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Extra(BaseModel):
    raw_info: dict[str, Any] = Field(default_factory=dict)


class AuthResult(BaseModel):
    """
    Normalized result of a successful sign in, handed to the application.
    """

    provider: str
    strategy: str
    uid: str | None = Field(None, description="Subject identifier for the user")
    credentials: Credentials
    info: Info
    extra: Extra
