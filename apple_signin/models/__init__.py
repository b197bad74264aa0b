"""Data models for the sign in service."""

from apple_signin.models.auth import (
    AuthFailure,
    AuthResult,
    CallbackState,
    Credentials,
    Extra,
    Info,
    RequestOptions,
    StrategyConfig,
    TokenResult,
)
from apple_signin.models.errors import ErrorCode, StrategyError
from apple_signin.models.health import HealthCheckResponse

__all__ = [
    "AuthFailure",
    "AuthResult",
    "CallbackState",
    "Credentials",
    "ErrorCode",
    "Extra",
    "HealthCheckResponse",
    "Info",
    "RequestOptions",
    "StrategyConfig",
    "StrategyError",
    "TokenResult",
]
