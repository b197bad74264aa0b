"""Error handling data models."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error keys reported by strategies."""

    # Callback outcomes
    AUTH_FAILED = "auth_failed"
    MISSING_CODE = "missing_code"
    CSRF_ATTACK = "csrf_attack"

    # Collaborator failures
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    INVALID_ID_TOKEN = "invalid_id_token"

    # Host errors
    STRATEGY_NOT_FOUND = "strategy_not_found"
    INVALID_STATE = "invalid_state"


# Custom exception classes
class StrategyError(Exception):
    """Base exception for authentication strategy errors."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class TokenExchangeError(StrategyError):
    """
    The authorization code could not be exchanged for a token.

    `error` and `description` carry what the token endpoint reported.
    """

    def __init__(self, error: str, description: str) -> None:
        self.error = error
        self.description = description
        super().__init__(ErrorCode.TOKEN_EXCHANGE_FAILED, f"{error}: {description}")


class IdentityTokenError(StrategyError):
    """The identity token is missing, unverifiable or lacks required claims."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.INVALID_ID_TOKEN, message, details)


class StrategyStateError(StrategyError):
    """An extraction was attempted without a successful callback."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INVALID_STATE, message)


class StrategyNotFoundError(StrategyError):
    """No strategy is registered for the requested provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            ErrorCode.STRATEGY_NOT_FOUND, f"Unknown provider '{provider}'", {"provider": provider}
        )


class StrategyRegistrationError(Exception):
    """A strategy could not be registered."""
    pass
