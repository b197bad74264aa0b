"""
Sign In with Apple strategy.

Apple only posts the `user` JSON (carrying the user's name) on the first authorization.
The subject identifier and email always come from the verified identity token and take
precedence over anything in that JSON.
"""

import json
import re
from typing import Any

from starlette.responses import RedirectResponse

from apple_signin.models.auth import Credentials, Extra, Info, RequestOptions, StrategyConfig
from apple_signin.models.errors import (
    ErrorCode,
    IdentityTokenError,
    StrategyStateError,
    TokenExchangeError,
)
from apple_signin.providers.apple_id_token import AppleIdentityTokenDecoder
from apple_signin.providers.apple_oauth import AppleOAuthClient
from apple_signin.strategies.base import BaseStrategy, RequestContext
from apple_signin.utils.logging import get_logger

logger = get_logger(__name__)

# Apple space-delimits granted scopes; commas are accepted as well.
_SCOPE_SEPARATOR = re.compile(r"[\s,]+")


class AppleStrategy(BaseStrategy):
    """Authenticates users with Sign In with Apple."""

    def __init__(
        self,
        config: StrategyConfig,
        oauth_client: AppleOAuthClient | None = None,
        id_token_decoder: AppleIdentityTokenDecoder | None = None,
    ) -> None:
        super().__init__(config)
        self.oauth_client = oauth_client or AppleOAuthClient(config)
        self.id_token_decoder = id_token_decoder or AppleIdentityTokenDecoder(
            config.client_id,
            cache_ttl=config.jwks_cache_ttl,
            timeout=config.token_timeout,
        )

    @property
    def name(self) -> str:
        return "apple"

    #
    # Request phase
    #

    async def handle_request(self, ctx: RequestContext) -> RedirectResponse:
        """Redirects to Apple's authorize endpoint."""
        scope = ctx.params["scope"] if "scope" in ctx.params else self.option(ctx, "default_scope")

        params: dict[str, str] = {"scope": scope}
        params = self._with_optional(params, "prompt", ctx)
        params = self._with_optional(params, "access_type", ctx)
        params = self._with_param(params, "access_type", ctx)
        params = self._with_param(params, "prompt", ctx)
        params = self._with_param(params, "response_mode", ctx)
        params = self.with_state_param(params, ctx)

        options = RequestOptions(**params)
        url = self.oauth_client.authorize_url(options.as_params(), self._client_options(ctx))
        logger.info("apple_request_redirect", scope=options.scope, response_mode=options.response_mode)
        return RedirectResponse(url, status_code=302)

    #
    # Callback phase
    #

    async def handle_callback(self, ctx: RequestContext) -> None:
        if "code" in ctx.params:
            await self._handle_code(ctx, ctx.params["code"])
        elif "error" in ctx.params:
            self.set_errors(ctx, [self.error(ErrorCode.AUTH_FAILED.value, ctx.params["error"])])
        else:
            self.set_errors(ctx, [self.error(ErrorCode.MISSING_CODE.value, "No code received")])

    async def _handle_code(self, ctx: RequestContext, code: str) -> None:
        user = self._parse_user(ctx.params.get("user"))

        client_options = self._client_options(ctx)
        try:
            token = await self.oauth_client.get_access_token(code, client_options)
        except TokenExchangeError as e:
            self.set_errors(ctx, [self.error(e.error, e.description)])
            return

        try:
            claims = await self.id_token_decoder.decode(
                token.other_params.get("id_token"),
                audience=client_options.get("client_id") or self.config.client_id,
            )
            missing = [claim for claim in ("sub", "email") if not claims.get(claim)]
            if missing:
                raise IdentityTokenError(
                    f"Identity token is missing claims: {', '.join(missing)}", {"missing": missing}
                )
        except IdentityTokenError as e:
            self.set_errors(ctx, [self.error(e.code.value, e.message)])
            return

        ctx.private.token = token
        ctx.private.user = {**user, "uid": claims["sub"], "email": claims["email"]}

    @staticmethod
    def _parse_user(raw_user: str | None) -> dict[str, Any]:
        if not raw_user:
            return {}
        try:
            user = json.loads(raw_user)
        except json.JSONDecodeError as e:
            logger.warning("apple_user_json_invalid", error=str(e))
            return {}
        if not isinstance(user, dict):
            logger.warning("apple_user_json_invalid", error="user is not an object")
            return {}
        return user

    def handle_cleanup(self, ctx: RequestContext) -> None:
        ctx.private.user = None
        ctx.private.token = None

    #
    # Accessors
    #

    def uid(self, ctx: RequestContext) -> str | None:
        uid_field = str(self.option(ctx, "uid_field"))
        user = ctx.private.user
        if user is None:
            return None
        value = user.get(uid_field)
        return value if isinstance(value, str) else None

    def credentials(self, ctx: RequestContext) -> Credentials:
        token = ctx.private.token
        if token is None:
            raise StrategyStateError("No Apple token stored for this request")

        scope_string = token.other_params.get("scope") or ""
        return Credentials(
            expires=token.expires_at is not None,
            expires_at=token.expires_at,
            scopes=[scope for scope in _SCOPE_SEPARATOR.split(scope_string) if scope],
            token_type=token.token_type,
            refresh_token=token.refresh_token,
            token=token.access_token,
        )

    def info(self, ctx: RequestContext) -> Info:
        user = ctx.private.user or {}
        name = user.get("name")
        if not isinstance(name, dict):
            name = None

        return Info(
            email=user.get("email"),
            first_name=name.get("firstName") if name else None,
            last_name=name.get("lastName") if name else None,
        )

    def extra(self, ctx: RequestContext) -> Extra:
        """Raw token and user, kept for auditing."""
        return Extra(raw_info={"token": ctx.private.token, "user": ctx.private.user})

    #
    # Configuration helpers
    #

    @staticmethod
    def _with_param(params: dict[str, str], key: str, ctx: RequestContext) -> dict[str, str]:
        if key in ctx.params:
            return {**params, key: ctx.params[key]}
        return params

    def _with_optional(self, params: dict[str, str], key: str, ctx: RequestContext) -> dict[str, str]:
        value = self.option(ctx, key)
        if value:
            return {**params, key: value}
        return params

    def _client_options(self, ctx: RequestContext) -> dict[str, Any]:
        base_options: dict[str, Any] = {"redirect_uri": ctx.callback_url}
        client_id = ctx.request_options.get("client_id")
        client_secret = ctx.request_options.get("client_secret")

        if client_id is None or client_secret is None:
            return base_options
        return {"client_id": client_id, "client_secret": client_secret, **base_options}
