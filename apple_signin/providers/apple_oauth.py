"""OAuth2 client for Apple's authorization and token endpoints."""

from typing import Any

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.jose import JoseError
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from apple_signin.models.auth import StrategyConfig, TokenResult
from apple_signin.models.errors import TokenExchangeError
from apple_signin.providers.client_secret import generate_client_secret
from apple_signin.utils.logging import get_logger

logger = get_logger(__name__)

APPLE_AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
APPLE_TOKEN_URL = "https://appleid.apple.com/auth/token"


class AppleOAuthClient:
    """
    Builds authorize URLs and exchanges authorization codes against Apple.

    Client options passed per call (`client_id`, `client_secret`, `redirect_uri`) take
    precedence over the static configuration.
    """

    def __init__(self, config: StrategyConfig) -> None:
        self.config = config

    def _client_id(self, opts: dict[str, Any]) -> str:
        return opts.get("client_id") or self.config.client_id

    def _client_secret(self, opts: dict[str, Any]) -> str:
        if opts.get("client_secret"):
            return opts["client_secret"]
        if self.config.client_secret:
            return self.config.client_secret
        if not (self.config.team_id and self.config.key_id and self.config.private_key):
            raise ValueError("No Apple client secret or signing key configured.")
        return generate_client_secret(
            team_id=self.config.team_id,
            client_id=self._client_id(opts),
            key_id=self.config.key_id,
            private_key=self.config.private_key,
        )

    def authorize_url(self, params: dict[str, str], opts: dict[str, Any]) -> str:
        """
        Returns Apple's authorize URL for the given parameters.

        Args:
            params: Authorize parameters (scope, state, prompt, response_mode...).
            opts: Client options, `redirect_uri` and optional `client_id`.
        """
        params = dict(params)
        scope = params.pop("scope", None)
        state = params.pop("state", None)
        return prepare_grant_uri(
            APPLE_AUTHORIZE_URL,
            client_id=self._client_id(opts),
            response_type="code",
            redirect_uri=opts.get("redirect_uri"),
            scope=scope,
            state=state,
            **params,
        )

    async def get_access_token(self, code: str, opts: dict[str, Any]) -> TokenResult:
        """
        Exchanges an authorization code for tokens.

        Raises:
            TokenExchangeError: No usable client secret, or Apple rejected the code or
                could not be reached.
        """
        client_id = self._client_id(opts)
        try:
            client_secret = self._client_secret(opts)
        except (ValueError, JoseError) as e:
            logger.error("apple_client_secret_unavailable", client_id=client_id, error=str(e))
            raise TokenExchangeError("invalid_client", f"Unable to build client secret: {e}") from e

        async with AsyncOAuth2Client(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=opts.get("redirect_uri"),
            token_endpoint_auth_method="client_secret_post",
            timeout=self.config.token_timeout,
        ) as client:
            try:
                token = await client.fetch_token(
                    APPLE_TOKEN_URL, grant_type="authorization_code", code=code
                )
            except OAuthError as e:
                logger.warning(
                    "apple_token_exchange_rejected", client_id=client_id, error=e.error
                )
                raise TokenExchangeError(e.error or "invalid_request", e.description or "") from e
            except httpx.HTTPError as e:
                logger.error("apple_token_exchange_failed", client_id=client_id, error=str(e))
                raise TokenExchangeError("token_exchange_failed", str(e)) from e
            except ValueError as e:
                logger.error("apple_token_response_invalid", client_id=client_id, error=str(e))
                raise TokenExchangeError("invalid_response", "Token endpoint returned invalid JSON") from e

        logger.info("apple_token_exchanged", client_id=client_id)
        return TokenResult.from_response(token)
