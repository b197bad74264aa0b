import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from starlette.responses import Response

from apple_signin.models.auth import (
    AuthFailure,
    AuthResult,
    CallbackState,
    Credentials,
    Extra,
    Info,
    StrategyConfig,
)
from apple_signin.models.errors import ErrorCode
from apple_signin.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RequestContext:
    """
    Everything a strategy sees of a single HTTP request.

    `params` merges the query string and a `form_post` body. `request_options` are the
    options the provider was registered with and take precedence over the static
    StrategyConfig. `private` holds what a successful callback produced.
    """

    provider: str
    params: dict[str, str]
    callback_url: str
    request_options: dict[str, Any] = field(default_factory=dict)
    private: CallbackState = field(default_factory=CallbackState)
    errors: list[AuthFailure] = field(default_factory=list)
    state_param: str | None = None

    @property
    def failed(self) -> bool:
        return bool(self.errors)


class BaseStrategy(ABC):
    """
    Abstract Base Class for all authentication strategies.

    A strategy runs in two phases. `handle_request` redirects the user-agent to the
    provider and `handle_callback` processes the provider's answer. After a successful
    callback the four accessors (`uid`, `credentials`, `info`, `extra`) are read to build
    the AuthResult, then `handle_cleanup` discards the per-request state.
    """

    def __init__(self, config: StrategyConfig) -> None:
        self.config = config

    @property
    @abstractmethod
    def name(self) -> str:
        """The provider name the strategy answers to."""
        raise NotImplementedError

    @abstractmethod
    async def handle_request(self, ctx: RequestContext) -> Response:
        """Returns the redirect to the provider's authorization endpoint."""
        raise NotImplementedError

    @abstractmethod
    async def handle_callback(self, ctx: RequestContext) -> None:
        """
        Processes the provider callback.

        Failures are appended to `ctx.errors`; successful results go to `ctx.private`.
        """
        raise NotImplementedError

    @abstractmethod
    def handle_cleanup(self, ctx: RequestContext) -> None:
        raise NotImplementedError

    @abstractmethod
    def uid(self, ctx: RequestContext) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def credentials(self, ctx: RequestContext) -> Credentials:
        raise NotImplementedError

    @abstractmethod
    def info(self, ctx: RequestContext) -> Info:
        raise NotImplementedError

    @abstractmethod
    def extra(self, ctx: RequestContext) -> Extra:
        raise NotImplementedError

    def option(self, ctx: RequestContext, key: str) -> Any | None:
        """
        Looks `key` up in the request options first, then in the static configuration.

        Returns None when neither source defines it.
        """
        value = ctx.request_options.get(key)
        if value is not None:
            return value
        return getattr(self.config, key, None)

    @staticmethod
    def error(key: str, message: str) -> AuthFailure:
        return AuthFailure(message_key=key, message=message)

    @staticmethod
    def set_errors(ctx: RequestContext, errors: list[AuthFailure]) -> None:
        ctx.errors.extend(errors)

    @staticmethod
    def with_state_param(params: dict[str, str], ctx: RequestContext) -> dict[str, str]:
        """Adds a freshly generated anti-forgery `state` and binds it to the context."""
        ctx.state_param = secrets.token_urlsafe(24)
        return {**params, "state": ctx.state_param}

    def auth(self, ctx: RequestContext) -> AuthResult:
        """Assembles the AuthResult from the accessors."""
        return AuthResult(
            provider=ctx.provider,
            strategy=type(self).__name__,
            uid=self.uid(ctx),
            credentials=self.credentials(ctx),
            info=self.info(ctx),
            extra=self.extra(ctx),
        )

    async def run_callback(self, ctx: RequestContext, expected_state: str | None) -> AuthResult | None:
        """
        Runs the callback phase the way the host expects it.

        The `state` parameter must match the one issued by the request phase. Cleanup
        always runs, so no stored token or profile outlives this call.

        Returns:
            The AuthResult, or None when `ctx.errors` describes why the sign in failed.
        """
        try:
            received_state = ctx.params.get("state")
            if not expected_state or not received_state or not secrets.compare_digest(
                received_state.encode(), expected_state.encode()
            ):
                logger.warning("auth_state_mismatch", provider=ctx.provider)
                self.set_errors(
                    ctx, [self.error(ErrorCode.CSRF_ATTACK.value, "Cross-Site Request Forgery attack")]
                )
                return None

            await self.handle_callback(ctx)
            if ctx.failed:
                logger.info(
                    "auth_callback_failed",
                    provider=ctx.provider,
                    errors=[e.message_key for e in ctx.errors],
                )
                return None

            return self.auth(ctx)
        finally:
            self.handle_cleanup(ctx)
